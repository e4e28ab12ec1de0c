"""게시글 로더 — posts/<slug>/article.md + article_frontmatter.toml.

캐시 없이 요청마다 디스크에서 새로 읽는다. 모든 함수는 동기 함수라서
라우트에서는 asyncio.to_thread()로 이벤트 루프 밖에서 호출한다.
"""

import logging
import tomllib
from dataclasses import dataclass
from pathlib import Path

from pydantic import BaseModel, NonNegativeInt, ValidationError

from app.errors import ContentError, PostNotFound

logger = logging.getLogger(__name__)

ARTICLE_FILE = "article.md"
FRONT_MATTER_FILE = "article_frontmatter.toml"


class FrontMatter(BaseModel):
    """게시글 메타데이터 (목록의 요약 정보로도 쓰인다)."""

    title: str
    file_name: str
    description: str
    posted: str
    thumbnail: str
    tags: list[str]
    author: str
    estimated_reading_time: NonNegativeInt
    order: NonNegativeInt


@dataclass(frozen=True)
class Post:
    front_matter: FrontMatter
    markdown: str


def parse_front_matter(raw: str, source: str = "<string>") -> FrontMatter:
    try:
        return FrontMatter.model_validate(tomllib.loads(raw))
    except (tomllib.TOMLDecodeError, ValidationError) as e:
        raise ContentError(f"invalid front matter in {source}: {e}") from e


def find_all_front_matter(root: Path) -> list[FrontMatter]:
    """root 바로 아래 게시글 폴더의 front matter를 모두 읽는다.

    정렬은 하지 않는다. 하나라도 깨져 있으면 전체가 실패한다.
    """
    front_matters = []
    for entry in root.iterdir():
        article = entry / ARTICLE_FILE
        front_matter = entry / FRONT_MATTER_FILE
        if not (entry.is_dir() and article.is_file() and front_matter.is_file()):
            continue
        front_matters.append(parse_front_matter(front_matter.read_text(encoding="utf-8"), str(front_matter)))
    logger.debug("front matter %d건 로드: %s", len(front_matters), root)
    return front_matters


def sort_by_order(front_matters: list[FrontMatter]) -> list[FrontMatter]:
    """order 내림차순 (큰 값이 먼저)."""
    return sorted(front_matters, key=lambda fm: fm.order, reverse=True)


def _post_dir(root: Path, name: str) -> Path:
    # 폴더 이름 하나만 허용 (../, 숨김 폴더 차단)
    if not name or name.startswith(".") or "/" in name or "\\" in name:
        raise PostNotFound(name)
    return root / name


def load_post(root: Path, name: str) -> Post:
    post_dir = _post_dir(root, name)
    try:
        markdown = (post_dir / ARTICLE_FILE).read_text(encoding="utf-8")
        raw_front_matter = (post_dir / FRONT_MATTER_FILE).read_text(encoding="utf-8")
    except (FileNotFoundError, NotADirectoryError) as e:
        raise PostNotFound(name) from e

    front_matter = parse_front_matter(raw_front_matter, str(post_dir / FRONT_MATTER_FILE))
    return Post(front_matter=front_matter, markdown=markdown)
