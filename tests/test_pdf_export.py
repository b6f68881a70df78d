from __future__ import annotations

import base64
import math
import re
from unittest.mock import patch

import pytest
from PIL import Image
from reportlab.lib.units import mm

from invoice_craft.services.capture import InvoiceView, Raster
from invoice_craft.services.exceptions import ElementNotFoundError
from invoice_craft.services.pdf_export import (
    A4,
    ExportedDocument,
    PageGeometry,
    download_filename,
    download_invoice,
    export_invoice,
    page_count,
    plan_pages,
    render_pdf,
    save_document,
    scaled_height,
)


def _pdf_pages(content: bytes) -> int:
    return len(re.findall(rb"/Type /Page\b", content))


def _raster(width: int, height: int) -> Raster:
    return Raster(image=Image.new("RGB", (width, height), "white"), scale=1)


class TestPagination:
    def test_default_geometry_is_a4(self):
        assert (A4.width, A4.height) == (210, 297)

    def test_scaled_height_keeps_aspect_ratio(self):
        assert scaled_height(1588, 2246, 210) == 2246 * 210 / 1588
        assert scaled_height(420, 594, 210) == 297

    @pytest.mark.parametrize("height", [1, 150, 296.9, 297, 297.1, 500, 594, 1000, 2970])
    def test_page_count_is_ceil(self, height):
        assert page_count(height, 297) == math.ceil(height / 297)
        assert len(plan_pages(height, 297)) == math.ceil(height / 297)

    def test_exact_multiple_adds_no_blank_page(self):
        assert plan_pages(2 * 297, 297) == [0.0, -297]

    def test_float_noise_on_exact_multiple(self):
        height = scaled_height(1588, 1588 * 594 / 210, 210)
        assert len(plan_pages(height, 297)) == 2

    @pytest.mark.parametrize("pages", [1, 2, 10])
    def test_sliver_past_page_boundary_gets_a_page(self, pages):
        height = pages * 297 * (1 + 1e-7)
        assert page_count(height, 297) == pages + 1
        assert len(plan_pages(height, 297)) == pages + 1

    def test_offsets_step_by_page_height(self):
        offsets = plan_pages(1000, 297)
        assert offsets == pytest.approx([0, -297, -594, -891])

    def test_every_unit_covered(self):
        content = 700.0
        offsets = plan_pages(content, 297)
        # Last page window [k*297, (k+1)*297) must reach the end of the content
        assert -offsets[-1] + 297 >= content
        assert -offsets[-1] < content


class TestRenderPdf:
    def test_two_pages_for_double_height(self):
        content, pages = render_pdf(_raster(210, 594))
        assert pages == 2
        assert content.startswith(b"%PDF")
        assert _pdf_pages(content) == 2

    def test_single_page(self):
        content, pages = render_pdf(_raster(420, 300))
        assert pages == 1
        assert _pdf_pages(content) == 1

    def test_image_shifted_up_each_page(self):
        with patch("invoice_craft.services.pdf_export.canvas.Canvas") as mock_canvas:
            pdf = mock_canvas.return_value
            render_pdf(_raster(210, 594))
        ys = [c.args[2] for c in pdf.drawImage.call_args_list]
        assert ys == pytest.approx([-297 * mm, 0])
        assert pdf.showPage.call_count == 2
        pdf.save.assert_called_once()
        _, kwargs = pdf.drawImage.call_args
        assert kwargs["width"] == pytest.approx(210 * mm)
        assert kwargs["height"] == pytest.approx(594 * mm)

    def test_custom_geometry(self):
        with patch("invoice_craft.services.pdf_export.canvas.Canvas") as mock_canvas:
            render_pdf(_raster(100, 100), PageGeometry(width=100, height=50))
        _, kwargs = mock_canvas.call_args
        assert kwargs["pagesize"] == pytest.approx((100 * mm, 50 * mm))
        assert mock_canvas.return_value.showPage.call_count == 2


class TestExportInvoice:
    def test_exports_pdf(self, sample_invoice):
        doc = export_invoice(sample_invoice, InvoiceView(sample_invoice))
        assert doc.filename == "invoice-INV-a.pdf"
        assert doc.content.startswith(b"%PDF")
        assert doc.page_count == _pdf_pages(doc.content) == 1

    def test_long_invoice_spans_pages(self, make_invoice):
        from invoice_craft.models.invoice import LineItem

        items = tuple(LineItem(id=str(n), description=f"line {n}") for n in range(60))
        inv = make_invoice(items=items)
        doc = export_invoice(inv, InvoiceView(inv), scale=1)
        assert doc.page_count >= 2
        assert _pdf_pages(doc.content) == doc.page_count

    def test_missing_element(self, sample_invoice):
        with pytest.raises(ElementNotFoundError):
            export_invoice(sample_invoice, None)

    def test_base64_payload(self):
        doc = ExportedDocument(content=b"%PDF-1.4 data", filename="x.pdf", page_count=1)
        assert base64.b64decode(doc.as_base64()) == b"%PDF-1.4 data"

    def test_download_filename(self, make_invoice):
        assert download_filename(make_invoice(invoice_number="INV-42")) == "invoice-INV-42.pdf"


class TestSave:
    def test_save_document(self, tmp_path):
        doc = ExportedDocument(content=b"%PDF-1.4", filename="invoice-INV-1.pdf", page_count=1)
        path = save_document(doc, tmp_path / "out")
        assert path == tmp_path / "out" / "invoice-INV-1.pdf"
        assert path.read_bytes() == b"%PDF-1.4"

    def test_download_invoice(self, tmp_path, sample_invoice):
        path = download_invoice(sample_invoice, InvoiceView(sample_invoice), tmp_path)
        assert path.name == "invoice-INV-a.pdf"
        assert path.read_bytes().startswith(b"%PDF")
