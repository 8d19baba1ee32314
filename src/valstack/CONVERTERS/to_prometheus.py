"""
Converters for writing the scrape configuration as a prometheus.yml file.
"""
import os
from typing import Any, Dict
import yaml
from ..MODELS.scrape_config import ScrapeConfig
from ..errors import OutputError
from ..UTILS.fs import atomic_write

PROMETHEUS_FILE = "prometheus.yml"


class PrometheusConverter:
    """
    Converts a ScrapeConfig into the Prometheus configuration format.
    """

    def __init__(self, config: ScrapeConfig):
        self.config = config

    def to_dict(self) -> Dict[str, Any]:
        return {
            "global": {"scrape_interval": self.config.scrape_interval},
            "scrape_configs": [
                {
                    "job_name": job.job_name,
                    "static_configs": [{"targets": list(job.targets)}],
                }
                for job in self.config.jobs
            ],
        }

    def convert(self, output_dir: str = ".") -> str:
        """
        Writes prometheus.yml.

        :param output_dir: The provisioning root.
        :return: The path to the written file.
        :raises OutputError: If the file cannot be written.
        """
        path = os.path.join(output_dir, PROMETHEUS_FILE)
        try:
            atomic_write(path, yaml.safe_dump(self.to_dict(), sort_keys=False))
        except OSError as e:
            raise OutputError(f"cannot write {path}: {e}") from e
        return path
