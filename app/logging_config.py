"""로깅 설정.

루트 로거 하나만 설정하고, 모듈은 getLogger(__name__)으로 가져다 쓴다.
레벨은 LOG_LEVEL 환경변수에서 오며, SQLAlchemy 엔진 로거는 WARNING으로 낮춰
요청마다 SQL이 찍히지 않게 한다.
"""

import logging


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
