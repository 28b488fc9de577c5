# Copyright (c) MONAI Consortium
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#     http://www.apache.org/licenses/LICENSE-2.0
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
import logging.config
import sys
from pathlib import Path


def build_logging_config(log_dir: str = "logs", level: str = "INFO") -> dict:
    """
    Console output goes to stderr: stdout is reserved for protocol frames.
    """
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    level = level.upper()

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "stream": sys.stderr,
                "formatter": "default",
                "level": level,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(path / "tool_server.log"),
                "formatter": "default",
                "maxBytes": 10485760,  # 10MB
                "backupCount": 5,
                "level": "DEBUG",
            },
        },
        "loggers": {
            "": {  # Root logger
                "handlers": ["console", "file"],
                "level": level,
                "propagate": True,
            },
        },
    }


def configure_logging(log_dir: str = "logs", level: str = "INFO"):
    logging.config.dictConfig(build_logging_config(log_dir, level))
