"""
Message-driven crawl, download and analysis pipeline.

Producers (``pipeline.commands``) publish a seed message to an exchange.
Consumers (``pipeline.consumer``) bind one queue each, do one unit of work
per delivered message, persist the result and may publish follow-up
messages for the next stage. The routing keys in
``pipeline.broker.topology.TOPOLOGY`` are the pipeline graph.
"""

__version__ = "1.0.0"
