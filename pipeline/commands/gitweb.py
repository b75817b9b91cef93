"""
crawler:gitweb command: seed the Gitweb crawl of one project.

    crawler:gitweb
        |-> crawler.gitweb
                |-> download.git

Projects without a ``gitweb`` entry are skipped.
"""

from __future__ import annotations

from typing import Optional

from pipeline.commands.base import Producer, validate_url
from pipeline.models.messages import GitwebCrawlMessage


class GitwebCommand(Producer):
    name = "crawler:gitweb"
    description = "Adds a Gitweb page to the message queue to crawl it."
    routing_key = "crawler.gitweb"

    def build_message(self, project: str) -> Optional[GitwebCrawlMessage]:
        gitweb_url = self.project_settings(project).gitweb
        if not gitweb_url:
            return None

        return GitwebCrawlMessage(project=project, url=validate_url(gitweb_url))
