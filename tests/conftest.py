from __future__ import annotations

import sys
from pathlib import Path

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
for path in (SRC, ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from tests.helpers.models import CountingAdapter, PET, USER, build_ontology  # noqa: E402


@pytest.fixture
def spy() -> CountingAdapter:
    return CountingAdapter()


@pytest_asyncio.fixture
async def ontology(spy: CountingAdapter):
    onto = await build_ontology([USER, PET], spy)
    yield onto
    await onto.teardown()
