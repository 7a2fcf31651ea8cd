import pytest

from app.utils.media_files import (
    guess_content_type,
    processed_key,
    revised_transcript_key,
    safe_name,
    staging_key,
    transcript_key,
)


def test_keys_are_derived_from_the_file_name() -> None:
    assert staging_key("test.mp3") == "upload/test.mp3"
    assert processed_key("test.mp3") == "processed/test.mp3"
    assert transcript_key("test.mp3") == "completed/test.mp3.txt"
    assert revised_transcript_key("completed/test.mp3.txt") == "completed/revised-test.mp3.txt"


def test_client_supplied_directories_are_stripped() -> None:
    assert safe_name("../../etc/passwd") == "passwd"
    assert safe_name("C:\\Users\\me\\talk.wav") == "talk.wav"
    assert staging_key("nested/dir/a.mp3") == "upload/a.mp3"


@pytest.mark.parametrize("name", ["", "folder/", ".."])
def test_empty_names_are_rejected(name: str) -> None:
    with pytest.raises(ValueError):
        safe_name(name)


def test_content_type_falls_back_to_extension_then_octet_stream() -> None:
    assert guess_content_type("talk.mp3") == "audio/mpeg"
    assert guess_content_type("TALK.WAV") == "audio/wav"
    assert guess_content_type("notes.bin") == "application/octet-stream"


def test_content_type_prefers_sniffed_bytes() -> None:
    # en-tête RIFF/WAVE : le contenu l'emporte sur l'extension trompeuse
    head = b"RIFF\x24\x08\x00\x00WAVEfmt " + b"\x00" * 32
    assert guess_content_type("recording.mp3", head).endswith("wav")
