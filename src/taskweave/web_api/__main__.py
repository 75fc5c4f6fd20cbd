"""启动 Taskweave 服务：python -m taskweave.web_api"""

import uvicorn

from taskweave.common.config import settings


def main():
    # 内存存储与广播中心只存在于单个进程内，不能开启多 worker
    uvicorn.run(
        "taskweave.web_api.app:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.SERVER_RELOAD,
        workers=1,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
