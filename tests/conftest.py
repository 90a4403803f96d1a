from __future__ import annotations

from io import BytesIO
import re
import zipfile

from openpyxl import Workbook
from openpyxl.drawing.image import Image as XLImage
from openpyxl.drawing.spreadsheet_drawing import AnchorMarker, TwoCellAnchor
from openpyxl.worksheet.datavalidation import DataValidation
from PIL import Image
import pytest

EMU = 9525


def make_png(width: int = 4, height: int = 3, color: str = "red") -> bytes:
    """Return PNG bytes of a solid-colour image."""
    buffer = BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, format="PNG")
    return buffer.getvalue()


def workbook_bytes(wb: Workbook) -> bytes:
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def replace_data_validations(data: bytes, part: str, xml: str) -> bytes:
    """Rewrite the <dataValidations> block of one worksheet part."""
    source = zipfile.ZipFile(BytesIO(data))
    out = BytesIO()
    with zipfile.ZipFile(out, "w", zipfile.ZIP_DEFLATED) as target:
        for item in source.infolist():
            content = source.read(item.filename)
            if item.filename == part:
                text = content.decode("utf-8")
                text = re.sub(
                    r"<dataValidations\b.*?</dataValidations>",
                    xml,
                    text,
                    flags=re.DOTALL,
                )
                content = text.encode("utf-8")
            target.writestr(item, content)
    source.close()
    return out.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def sample_xlsx(png_bytes: bytes) -> bytes:
    """Two-sheet workbook with images, list validations and layout quirks.

    Summary: values in A1:B3, a one-cell anchored image at D2, a two-cell
    anchored image spanning B6:E11, a literal list validation on C2, a
    reference list validation on D5 and a whole-number validation on E5.
    Layout: custom/hidden columns and rows, a zero default column width, a
    merged range and an unquoted list validation on A1.
    """
    wb = Workbook()
    summary = wb.active
    summary.title = "Summary"
    for row in (("Fruit", "Qty"), ("Apple", 3), ("Pear", 5)):
        summary.append(row)

    summary.add_image(XLImage(BytesIO(png_bytes)), "D2")
    spanning = XLImage(BytesIO(png_bytes))
    spanning.anchor = TwoCellAnchor(
        _from=AnchorMarker(col=1, colOff=10 * EMU, row=5, rowOff=0),
        to=AnchorMarker(col=4, colOff=20 * EMU, row=10, rowOff=10 * EMU),
    )
    summary.add_image(spanning)

    colours = DataValidation(
        type="list",
        formula1='"Red, Green ,Blue"',
        allow_blank=True,
        showErrorMessage=True,
        errorTitle="Colour",
        error="Pick a colour",
        promptTitle="Hint",
        prompt="Choose one",
    )
    summary.add_data_validation(colours)
    colours.add("C2")
    reference = DataValidation(type="list", formula1="$H$1:$H$3", allow_blank=True)
    summary.add_data_validation(reference)
    reference.add("D5")
    whole = DataValidation(type="whole", operator="greaterThan", formula1="0")
    summary.add_data_validation(whole)
    whole.add("E5")

    layout = wb.create_sheet("Layout")
    layout["A1"] = "Yes"
    layout["A5"] = "Merged"
    layout.merge_cells("A5:B6")
    layout.column_dimensions["A"].width = 10
    layout.column_dimensions["B"].hidden = True
    layout.row_dimensions[2].height = 30
    layout.row_dimensions[3].hidden = True
    layout.sheet_format.defaultColWidth = 0
    answers = DataValidation(type="list", formula1="Yes,No", allow_blank=True)
    layout.add_data_validation(answers)
    answers.add("A1")
    return workbook_bytes(wb)


@pytest.fixture
def plain_xlsx() -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.title = "Plain"
    ws["A1"] = "only"
    return workbook_bytes(wb)


@pytest.fixture
def flags_xlsx() -> bytes:
    """Workbook whose validations omit or explicitly clear boolean flags."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Flags"
    placeholder = DataValidation(type="list", formula1='"a"')
    ws.add_data_validation(placeholder)
    placeholder.add("Z1")
    xml = (
        '<dataValidations count="2">'
        '<dataValidation type="list" sqref="A1">'
        '<formula1>"Yes,No"</formula1></dataValidation>'
        '<dataValidation type="list" allowBlank="0" showDropDown="0" '
        'sqref="B1 B3:B4 A9"><formula1>"x,y"</formula1></dataValidation>'
        "</dataValidations>"
    )
    return replace_data_validations(
        workbook_bytes(wb), "xl/worksheets/sheet1.xml", xml
    )
