import io
import zipfile

import pytest

from provider_mirror.models import Provider, ProviderTarget


def build_zip(files: dict) -> bytes:
    """Builds an in-memory zip archive from {name: bytes}."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
def provider():
    return Provider("registry.terraform.io", "hashicorp", "aws")


@pytest.fixture
def target(provider):
    return ProviderTarget(provider, "5.0.0", "linux", "amd64")


@pytest.fixture
def zip_bytes():
    return build_zip({"terraform-provider-aws_v5.0.0": b"binary contents", "LICENSE": b"MPL-2.0"})


@pytest.fixture
def make_zip():
    return build_zip
