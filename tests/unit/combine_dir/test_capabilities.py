from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from combine_dir import capabilities as caps
from combine_dir.capabilities import (
    CapabilitySet,
    DocumentConverter,
    ImageMetadataExtractor,
    JsonPrettyPrinter,
    PdfTextExtractor,
    SyntaxHighlighter,
    default_capabilities,
)
from combine_dir.exceptions import MissingCapabilityError

if TYPE_CHECKING:
    from pathlib import Path

    from pytest_mock import MockerFixture


@pytest.mark.unit
def test_json_pretty_printer_indents(tmp_path: Path) -> None:
    path = tmp_path / "b.json"
    path.write_text('{"x":1,"y":["é"]}', encoding="utf-8")

    result = JsonPrettyPrinter()(path)

    assert result.ok
    assert result.text == '{\n  "x": 1,\n  "y": [\n    "é"\n  ]\n}'


@pytest.mark.unit
def test_json_pretty_printer_reports_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{nope", encoding="utf-8")

    result = JsonPrettyPrinter()(path)

    assert not result.ok
    assert result.error.startswith("JSONDecodeError")


@pytest.mark.unit
def test_highlighter_fence_mode_keeps_source(tmp_path: Path) -> None:
    path = tmp_path / "app.py"
    source = "print('hi')\n"
    path.write_text(source, encoding="utf-8")

    result = SyntaxHighlighter(mode="fence")(path, text=source, language="python")

    assert result.ok
    assert result.text == source


@pytest.mark.unit
def test_highlighter_fence_mode_leaves_colouring_to_the_viewer(tmp_path: Path) -> None:
    path = tmp_path / "app.py"
    source = "def f():\n    return 1\n"
    path.write_text(source, encoding="utf-8")

    result = SyntaxHighlighter(mode="fence")(path)

    assert result.text == source
    assert "\x1b[" not in result.text


@pytest.mark.unit
def test_highlighter_ansi_mode_emits_escape_sequences(tmp_path: Path) -> None:
    path = tmp_path / "app.py"
    path.write_text("def f():\n    return 1\n", encoding="utf-8")

    result = SyntaxHighlighter(mode="ansi")(path, language="python")

    assert result.ok
    assert "\x1b[" in result.text
    assert "return" in result.text


@pytest.mark.unit
def test_highlighter_unknown_language_fails(tmp_path: Path) -> None:
    path = tmp_path / "x.zzz"
    path.write_text("x", encoding="utf-8")

    result = SyntaxHighlighter()(path, text="x", language="no-such-language")

    assert not result.ok
    assert "ClassNotFound" in result.error


@pytest.mark.unit
def test_pdf_extractor_reports_failure_on_corrupt_file(tmp_path: Path) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"%PDF-1.4\nthis is not a real pdf")

    result = PdfTextExtractor()(path)

    assert not result.ok
    assert result.error


@pytest.mark.unit
def test_pdf_extractor_reads_blank_page(tmp_path: Path) -> None:
    from pypdf import PdfWriter  # noqa: PLC0415

    path = tmp_path / "blank.pdf"
    writer = PdfWriter()
    writer.add_blank_page(width=72, height=72)
    with path.open("wb") as f:
        writer.write(f)

    result = PdfTextExtractor()(path)

    assert result.ok
    assert not result.text.strip()


@pytest.mark.unit
def test_document_converter_renders_headings_lists_and_tables(tmp_path: Path) -> None:
    import docx  # noqa: PLC0415

    path = tmp_path / "report.docx"
    document = docx.Document()
    document.add_heading("Report", level=1)
    document.add_paragraph("Intro text.")
    document.add_paragraph("first point", style="List Bullet")
    table = document.add_table(rows=2, cols=2)
    table.cell(0, 0).text = "name"
    table.cell(0, 1).text = "value"
    table.cell(1, 0).text = "a"
    table.cell(1, 1).text = "1"
    document.save(str(path))

    result = DocumentConverter()(path)

    assert result.ok
    assert "## Report" in result.text
    assert "Intro text." in result.text
    assert "- first point" in result.text
    assert "| name | value |" in result.text
    assert "| a | 1 |" in result.text


@pytest.mark.unit
def test_document_converter_fails_on_legacy_word_file(tmp_path: Path) -> None:
    path = tmp_path / "old.doc"
    path.write_bytes(b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 64)

    result = DocumentConverter()(path)

    assert not result.ok


@pytest.mark.unit
def test_image_metadata_extractor(tmp_path: Path) -> None:
    from PIL import Image  # noqa: PLC0415

    path = tmp_path / "pic.png"
    Image.new("RGB", (4, 3), color="red").save(path)

    result = ImageMetadataExtractor()(path)

    assert result.ok
    assert "File Name: pic.png" in result.text
    assert "Format: PNG" in result.text
    assert "MIME Type: image/png" in result.text
    assert "Image Size: 4x3" in result.text
    assert "Mode: RGB" in result.text


@pytest.mark.unit
def test_capability_turns_exceptions_into_failures(tmp_path: Path, mocker: MockerFixture) -> None:
    mocker.patch.object(JsonPrettyPrinter, "run", side_effect=RuntimeError("exploded"))

    result = JsonPrettyPrinter()(tmp_path / "x.json")

    assert not result.ok
    assert result.error == "RuntimeError: exploded"


@pytest.mark.unit
def test_default_capabilities_are_all_available() -> None:
    capabilities = default_capabilities()

    assert {c.name for c in capabilities} == {caps.PDF, caps.JSON, caps.HIGHLIGHT, caps.DOCUMENT, caps.IMAGE}
    assert capabilities.missing() == ()
    capabilities.ensure_available()


@pytest.mark.unit
def test_ensure_available_raises_for_missing_library(mocker: MockerFixture) -> None:
    real_find_spec = caps.importlib.util.find_spec
    mocker.patch.object(
        caps.importlib.util,
        "find_spec",
        side_effect=lambda name: None if name == "pypdf" else real_find_spec(name),
    )
    capabilities = CapabilitySet([PdfTextExtractor(), JsonPrettyPrinter()])

    with pytest.raises(MissingCapabilityError) as exc_info:
        capabilities.ensure_available()

    assert exc_info.value.missing == (caps.PDF,)
    assert str(exc_info.value) == "Missing required capabilities: pdf-text"


@pytest.mark.unit
def test_capability_set_lookup_by_name() -> None:
    printer = JsonPrettyPrinter(indent=4)
    capabilities = CapabilitySet([printer])

    assert capabilities[caps.JSON] is printer
    assert list(capabilities) == [printer]


@pytest.mark.unit
def test_capability_base_cannot_be_instantiated() -> None:
    with pytest.raises(TypeError):
        caps.Capability()  # type: ignore[abstract]


@pytest.mark.unit
def test_capability_subclass_must_implement_run() -> None:
    class Incomplete(caps.Capability):
        name = "incomplete"
        requires = "json"

    with pytest.raises(TypeError):
        Incomplete()  # type: ignore[abstract]
