import os

import pytest
from PIL import Image

from eyesee.gallery import GallerySaveError, save_photo


def test_save_creates_directory_and_jpeg(tmp_path):
    target = tmp_path / "photos" / "today"
    img = Image.new("RGBA", (4, 3), (10, 20, 30, 255))
    path = save_photo(img, str(target), now=0.25)
    assert os.path.dirname(path) == str(target)
    assert path.endswith("_250.jpg")
    with Image.open(path) as saved:
        assert saved.format == "JPEG"
        assert saved.size == (4, 3)


def test_save_into_a_file_path_fails(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x")
    with pytest.raises(GallerySaveError):
        save_photo(Image.new("RGB", (2, 2)), str(blocker))
