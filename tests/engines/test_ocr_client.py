from pathlib import Path

import pytest
from PIL import Image

from match_collector.core.engines.hud_ocr import ocr_client
from match_collector.core.engines.hud_ocr.ocr_client import TesseractOCRClient
from match_collector.core.errors import OCRError

TESSERACT_DATA = {
    "text": ["", "02:45", "3", "2", "", "MedalTV"],
    "conf": ["-1", "91.5", "88", "90.5", "-1", "40"],
    "block_num": [1, 1, 1, 1, 2, 2],
    "par_num": [1, 1, 1, 1, 1, 1],
    "line_num": [1, 1, 1, 1, 1, 1],
}


@pytest.fixture()
def frame_path(tmp_path: Path) -> Path:
    path = tmp_path / "frame_00001.png"
    Image.new("L", (120, 30), 255).save(path)
    return path


@pytest.mark.asyncio
async def test_read_rebuilds_lines_and_averages_word_confidence(monkeypatch, frame_path):
    calls = {}

    def fake_image_to_data(image, **kwargs):
        calls.update(kwargs)
        return TESSERACT_DATA

    monkeypatch.setattr(ocr_client.pytesseract, "image_to_data", fake_image_to_data)

    reading = await TesseractOCRClient(config="--psm 7").read(frame_path)

    assert reading.text == "02:45 3 2\nMedalTV"
    assert reading.confidence == pytest.approx((91.5 + 88 + 90.5 + 40) / 4)
    assert calls["config"] == "--psm 7"
    assert calls["lang"] == "eng"


@pytest.mark.asyncio
async def test_tesseract_failure_becomes_ocr_error(monkeypatch, frame_path):
    def broken_image_to_data(image, **kwargs):
        raise ocr_client.pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(ocr_client.pytesseract, "image_to_data", broken_image_to_data)

    with pytest.raises(OCRError):
        await TesseractOCRClient().read(frame_path)


@pytest.mark.asyncio
async def test_missing_frame_becomes_ocr_error(tmp_path: Path):
    with pytest.raises(OCRError):
        await TesseractOCRClient().read(tmp_path / "gone.png")


def test_empty_page_has_zero_confidence():
    reading = TesseractOCRClient()._collect({"text": ["", " "], "conf": ["-1", "-1"], "block_num": [1, 1], "par_num": [1, 1], "line_num": [1, 1]})

    assert reading.text == ""
    assert reading.confidence == 0.0
