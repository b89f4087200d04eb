from __future__ import annotations

import asyncio

from services.tool_worker.service import ToolWorkerService
from shared.config import RuntimeConfig
from shared.logging_setup import configure_logging
from shared.protocol import VERSION
from shared.service_base import NDJSONService


def main() -> None:
    config = RuntimeConfig.from_env()
    configure_logging(config.log_level)
    svc = ToolWorkerService(config)
    app = NDJSONService(name=config.server_name, version=VERSION, ops=svc.ops())
    asyncio.run(app.run_stdio())


if __name__ == "__main__":
    main()
