"""Shared fixtures; also makes the project root importable when running from elsewhere."""

import os
import sys

import pytest

PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from harvest_api.jobs.models import CrawlJobParams  # noqa: E402
from harvest_api.jobs.registry import JobRegistry  # noqa: E402


@pytest.fixture
def registry():
    return JobRegistry()


@pytest.fixture
def search_params():
    return CrawlJobParams(accessToken="x", keywords="#test", targetCount=10)
