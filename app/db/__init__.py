from .base import Base
from .session import engine
# db/init_db.py


def init_db():
    """建表（开发环境使用，生产环境走迁移）"""
    import app.models  # noqa: F401  注册全部模型
    Base.metadata.create_all(bind=engine)

# Export for convenience
__all__ = ["Base", "engine", "init_db"]
