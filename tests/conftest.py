import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path

import pytest

# Ensure the repo root is on sys.path for absolute imports.
REPO_ROOT = Path(__file__).resolve().parents[1]
repo_root_str = str(REPO_ROOT)
if repo_root_str not in sys.path:
    sys.path.insert(0, repo_root_str)

# Module-level loggers open their files on import; keep them out of the repo.
os.environ.setdefault(
    "HIVELENS_LOG_DIR", str(Path(tempfile.gettempdir()) / "hivelens-test-logs")
)

from hivelens.db import ImageStore  # noqa: E402
from hivelens.source import RawPost  # noqa: E402


@pytest.fixture
def store(tmp_path: Path) -> ImageStore:
    image_store = ImageStore(f"sqlite:///{tmp_path / 'hivelens.db'}")
    image_store.ensure_schema()
    return image_store


def make_post(
    author: str = "alice",
    permlink: str = "my-post",
    json_metadata=None,
    title: str = "A post",
    timestamp: datetime = datetime(2024, 5, 1, 12, 30),
) -> RawPost:
    return RawPost(
        author=author,
        timestamp=timestamp,
        title=title,
        permlink=permlink,
        json_metadata=json_metadata,
        post_url=f"https://hive.blog/@{author}/{permlink}",
    )
