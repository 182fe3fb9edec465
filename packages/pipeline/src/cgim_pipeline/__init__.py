"""
cgim_pipeline — Trade analytics engine for CGIM entity dictionaries.

Architecture:
  sources/     — ComexStat API adapter and entity dictionary sources
  transforms/  — dictionary index, hierarchy tree, flow merge, basket, composition
  pipelines/   — async orchestrators (per-code basket, annual series, sessions)
  utils/       — structlog configuration, retry, cache stores, worker pool
  cli.py       — `cgim` command line

Quick start:
    import asyncio
    from cgim_pipeline.pipelines.analytics import AnalyticsSession
    from cgim_pipeline.sources.comexstat import ComexStatSource
    from cgim_pipeline.sources.dictionary import CsvDictionarySource

    async def main():
        async with ComexStatSource() as client:
            session = AnalyticsSession(CsvDictionarySource(), client)
            return await session.load_tree("ABAL", 2024, "import")

    result = asyncio.run(main())

CLI:
    cgim entities
    cgim tree ABAL --year 2024 --flow import --format csv
    cgim series ABAL --from 2020 --to 2024

Shared code from cgim_shared:
    from cgim_shared.config import settings
    from cgim_shared.codes import normalize_code
    from cgim_shared.models import CategoryNode, TradeMeasurement, AnnualPoint
"""

__version__ = "0.1.0"
