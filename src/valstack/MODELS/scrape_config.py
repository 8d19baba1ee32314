"""
Models for the metrics scraper configuration.
"""
from typing import List
from pydantic import BaseModel

class ScrapeJob(BaseModel):
    """
    A single scrape job polling one or more targets.
    """
    job_name: str
    targets: List[str]

class ScrapeConfig(BaseModel):
    """
    Global scrape interval and the list of jobs.
    """
    scrape_interval: str = "15s"
    jobs: List[ScrapeJob] = []
