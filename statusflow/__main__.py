"""
Run the StatusFlow API server.

    python -m statusflow

Host, port and storage come from STATUSFLOW_* environment variables
(or a .env file); see StatusFlowConfig.from_env().
"""

import uvicorn

from statusflow.config import configure_logging, get_config


def main() -> None:
    config = get_config()
    configure_logging(config)
    uvicorn.run(
        "statusflow.api.app:create_app",
        factory=True,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
