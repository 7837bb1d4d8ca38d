"""
Prompt template library.

Templates are plain ``.txt`` files named after their stage
(``step1-query-rewrite.txt`` ...) with ``{placeholder}`` variables.
A ``<name>-with-tables.txt`` file, when present, is the variant used
for requests that carry a table-names hint.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

STEP1_QUERY_REWRITE = "step1-query-rewrite"
STEP2_TABLE_SELECTION = "step2-table-selection"
STEP3_INFORMATION_INFERENCE = "step3-information-inference"
STEP4_SQL_GENERATION = "step4-sql-generation"
STEP5_SQL_EXECUTION = "step5-sql-execution"
SQL_GENERATION = "sql-generation"

TABLES_VARIANT_SUFFIX = "-with-tables"


class PromptLibrary:
    """Load and cache prompt templates from a directory."""

    def __init__(self, prompts_dir: Optional[Union[str, Path]] = None):
        self.prompts_dir = Path(prompts_dir or DEFAULT_PROMPTS_DIR)
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    def exists(self, name: str) -> bool:
        return (self.prompts_dir / f"{name}.txt").is_file()

    def get(self, name: str) -> str:
        """
        Return the template text for *name*.

        Line endings are normalised to ``\\n`` and the text is
        trimmed.

        Parameters:
            name (str): Template name without extension.

        Returns:
            str: Template text.

        Raises:
            FileNotFoundError: If no such template exists.
        """
        with self._lock:
            if name not in self._cache:
                path = self.prompts_dir / f"{name}.txt"
                try:
                    raw = path.read_text(encoding="utf-8")
                except OSError:
                    logger.error("[prompts] cannot read %s", path)
                    raise
                self._cache[name] = raw.replace("\r\n", "\n").strip()
            return self._cache[name]

    def variant(self, name: str, table_names: Optional[str] = None) -> str:
        """
        Pick the template name for a request.

        Parameters:
            name (str): Base template name.
            table_names (str, optional): Table-names hint.

        Returns:
            str: ``name-with-tables`` when a hint is given and that
                variant exists, otherwise *name*.
        """
        if table_names and table_names.strip():
            candidate = name + TABLES_VARIANT_SUFFIX
            if self.exists(candidate):
                return candidate
        return name
