"""홈(게시글 목록)과 게시글 페이지.

파일 읽기는 블로킹이므로 asyncio.to_thread()로 스레드풀에서 실행한다 (스프링의 @Async).
PostNotFound는 전역 핸들러가 404 페이지로 바꾼다.
"""

import asyncio

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from app.config import settings
from app.content import find_all_front_matter, load_post, sort_by_order
from app.renderer import HomePage, PostPage, Renderer, get_renderer, markdown_to_html

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def home_index(renderer: Renderer = Depends(get_renderer)):
    front_matters = await asyncio.to_thread(find_all_front_matter, settings.posts_dir)
    return renderer.response(HomePage(posts=sort_by_order(front_matters)))


@router.get("/posts/{post_name}", response_class=HTMLResponse)
async def render_post(post_name: str, renderer: Renderer = Depends(get_renderer)):
    post = await asyncio.to_thread(load_post, settings.posts_dir, post_name)
    html = markdown_to_html(post.markdown)
    return renderer.response(PostPage(meta_data=post.front_matter, post=html))
