import base64
import hashlib
import zipfile

import pytest

from provider_mirror.checksums import calculate_sha256, digests_match, hash_zip


def _expected_h1(files: dict) -> str:
    summary = "".join(f"{hashlib.sha256(files[name]).hexdigest()}  {name}\n" for name in sorted(files))
    return "h1:" + base64.b64encode(hashlib.sha256(summary.encode()).digest()).decode()


def test_calculate_sha256():
    content = b"data for hashing 123"
    assert calculate_sha256(content) == hashlib.sha256(content).hexdigest()


def test_hash_zip_matches_manual_computation(tmp_path, make_zip):
    files = {"terraform-provider-aws_v5.0.0": b"binary", "LICENSE": b"MPL", "docs/README.md": b"# aws"}
    zip_path = tmp_path / "a.zip"
    zip_path.write_bytes(make_zip(files))

    assert hash_zip(zip_path) == _expected_h1(files)


def test_hash_zip_ignores_entry_order(tmp_path, make_zip):
    first = tmp_path / "first.zip"
    second = tmp_path / "second.zip"
    first.write_bytes(make_zip({"a": b"1", "b": b"2"}))
    second.write_bytes(make_zip({"b": b"2", "a": b"1"}))

    assert hash_zip(first) == hash_zip(second)


def test_hash_zip_depends_on_content(tmp_path, make_zip):
    first = tmp_path / "first.zip"
    second = tmp_path / "second.zip"
    first.write_bytes(make_zip({"a": b"1"}))
    second.write_bytes(make_zip({"a": b"2"}))

    assert hash_zip(first) != hash_zip(second)


def test_hash_zip_not_a_zip(tmp_path):
    path = tmp_path / "broken.zip"
    path.write_bytes(b"this is not a zip archive")

    with pytest.raises(zipfile.BadZipFile):
        hash_zip(path)


def test_hash_zip_missing_file(tmp_path):
    with pytest.raises(OSError):
        hash_zip(tmp_path / "nonexistent.zip")


@pytest.mark.parametrize("expected, actual, result", [
    ("ABCDEF", "abcdef", True),
    (" abcdef\n", "abcdef", True),
    ("abcdef", "abcdee", False),
])
def test_digests_match(expected, actual, result):
    assert digests_match(expected, actual) is result


@pytest.mark.filterwarnings("ignore:Duplicate name")
def test_hash_zip_duplicate_names_hash_every_listing(tmp_path):
    path = tmp_path / "dup.zip"
    with zipfile.ZipFile(path, "w") as archive:
        archive.writestr("a", b"first")
        archive.writestr("b", b"other")
        archive.writestr("a", b"second")

    line_a = f"{hashlib.sha256(b'second').hexdigest()}  a\n"
    line_b = f"{hashlib.sha256(b'other').hexdigest()}  b\n"
    summary = (line_a + line_a + line_b).encode()
    expected = "h1:" + base64.b64encode(hashlib.sha256(summary).digest()).decode()

    assert hash_zip(path) == expected
