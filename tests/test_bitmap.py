import pytest

from nexcore.bitmap import Bitmap, BitmapFormat


def test_allocates_three_bytes_per_pixel():
    bm = Bitmap(4, 3)
    assert len(bm.data) == 4 * 3 * 3
    assert set(bm.data) == {0}
    assert bm.format is BitmapFormat.RGB


def test_format_values():
    assert BitmapFormat.RGB == 0
    assert BitmapFormat.RGBA == 1
    assert Bitmap(1, 1, 1).format is BitmapFormat.RGBA


def test_wraps_existing_buffer():
    buffer = bytearray(2 * 2 * 3)
    bm = Bitmap(2, 2, data=buffer)
    bm.data[0] = 9
    assert buffer[0] == 9


def test_rejects_bad_arguments():
    with pytest.raises(ValueError):
        Bitmap(-1, 2)
    with pytest.raises(ValueError):
        Bitmap(2, 2, data=bytearray(5))
    with pytest.raises(ValueError):
        Bitmap(1, 1, 7)