"""
cgim_pipeline.sources — data source adapters.

  ComexStatSource       — ComexStat /general API (FOB value and net kg by NCM)
  CsvDictionarySource   — entity dictionary from a long-format CSV
  InMemoryDictionarySource — dictionary rows already in memory
"""

from cgim_pipeline.sources.comexstat import ComexStatSource
from cgim_pipeline.sources.dictionary import (
    CsvDictionarySource,
    DictionarySource,
    InMemoryDictionarySource,
    require_dictionary_source,
)

__all__ = [
    "ComexStatSource",
    "CsvDictionarySource",
    "DictionarySource",
    "InMemoryDictionarySource",
    "require_dictionary_source",
]
