"""Frame source tests that need no camera device."""

import base64

import pytest

from kavach.camera import DirectoryFrameSource, open_frame_source, to_data_url


def test_directory_source_cycles_frames_in_name_order(tmp_path) -> None:
    (tmp_path / "b.jpg").write_bytes(b"second")
    (tmp_path / "a.jpg").write_bytes(b"first")
    (tmp_path / "notes.txt").write_text("ignored")

    source = open_frame_source(str(tmp_path))

    assert isinstance(source, DirectoryFrameSource)
    assert [source.capture() for _ in range(3)] == [b"first", b"second", b"first"]


def test_released_directory_source_refuses_capture(tmp_path) -> None:
    (tmp_path / "a.jpg").write_bytes(b"x")
    source = DirectoryFrameSource(tmp_path)

    source.release()
    source.release()

    with pytest.raises(OSError):
        source.capture()


def test_directory_without_frames_is_rejected(tmp_path) -> None:
    with pytest.raises(ValueError):
        DirectoryFrameSource(tmp_path)


def test_to_data_url() -> None:
    url = to_data_url(b"\xff\xd8\xff")

    assert url.startswith("data:image/jpeg;base64,")
    assert base64.b64decode(url.split(",", 1)[1]) == b"\xff\xd8\xff"
