"""Label -> version lookups.

Labels move at any time, so this index keeps no state: every call asks the
store which version holds the label right now.
"""

import logging
from typing import Optional

from prompt_resolution.lib.exceptions import LabelAmbiguous
from prompt_resolution.lib.prompts.models import LATEST_LABEL
from prompt_resolution.lib.prompts.store import PromptStore

logger = logging.getLogger(__name__)


class LabelIndex:
    """Resolve (project_id, name, label) to a version number."""

    def __init__(self, store: PromptStore):
        self._store = store

    async def resolve(self, project_id: str, name: str, label: str) -> Optional[int]:
        """Return the version currently holding `label`, or None.

        If the store reports several holders (a label move raced the read),
        the highest version wins and the inconsistency is logged. The
        reserved 'latest' label falls back to the newest version when no
        version carries it explicitly.
        """
        holders = await self._store.fetch_label_holders(project_id, name, label)

        if len(holders) > 1:
            versions = sorted((p.version for p in holders), reverse=True)
            warning = LabelAmbiguous(
                f"Label '{label}' held by {len(holders)} versions of '{name}'",
                versions=versions,
            )
            logger.warning(
                "%s; using v%s", warning, versions[0],
                extra={"error_code": warning.error_code, "label": label, "versions": versions},
            )
            return versions[0]

        if holders:
            return holders[0].version

        if label == LATEST_LABEL:
            versions = await self._store.fetch_versions(project_id, name)
            if versions:
                return versions[0].version

        logger.debug("Label '%s' not found for prompt '%s'", label, name)
        return None
