from logging.config import dictConfig

dictConfig(
    {
        "version": 1,
        "formatters": {
            "default": {
                "format": "[%(asctime)s] %(levelname)s:%(name)s:%(module)s:%(funcName)s: %(message)s",
            },
        },
        "handlers": {
            "stdout.handler": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "level": "DEBUG",
                "formatter": "default",
            },
        },
        "loggers": {
            # The challenge server's access log
            "werkzeug": {
                "level": "INFO",
                "handlers": ["stdout.handler"],
                "propagate": False,
            },
            # Requests to Vault and the ACME server
            "urllib3": {
                "level": "WARNING",
            },
        },
        "root": {"level": "INFO", "handlers": ["stdout.handler"]},
    }
)

from acme_vault import cli

cli.main()
