"""Mirror deletions: remove destination entries missing from the source."""

import logging
from collections.abc import Iterable
from typing import Callable

logger = logging.getLogger(__name__)

_ROOT_MARKERS = frozenset({"", ".", "/"})


class DeletionReconciler:
    """Removes destination paths that are absent from the source tree.

    Deletions run deepest first, so children are always gone before their
    parent directory is removed. Each deletion is independent: a failure
    is logged and collected, and the remaining deletions still run.
    """

    def __init__(self, remover: Callable[[str], None], label: str = "destination"):
        """Initialize the reconciler.

        Args:
            remover: Deletes one relative path on the destination
            label: Side being cleaned, used in log messages
        """
        self.remover = remover
        self.label = label
        self.deleted: list[str] = []

    @staticmethod
    def plan(source_paths: Iterable[str], dest_paths: Iterable[str]) -> list[str]:
        """Compute the ordered list of paths to delete.

        Args:
            source_paths: Relative paths present in the source tree
            dest_paths: Relative paths present in the destination tree

        Returns:
            ``dest - source`` ordered by path length, longest first.
            Longer paths are deeper, so a path always precedes its
            ancestors. Equal lengths are ordered by path.
        """
        source = {p.strip("/") for p in source_paths}
        extras = {p.strip("/") for p in dest_paths} - source - _ROOT_MARKERS
        return sorted(extras, key=lambda p: (-len(p), p))

    def reconcile(
        self, source_paths: Iterable[str], dest_paths: Iterable[str]
    ) -> list[Exception]:
        """Delete every destination path that is missing from the source.

        Successfully removed paths are available in ``self.deleted``
        afterwards.

        Args:
            source_paths: Relative paths present in the source tree
            dest_paths: Relative paths present in the destination tree

        Returns:
            Errors of failed deletions, in deletion order
        """
        self.deleted = []
        errors: list[Exception] = []

        for path in self.plan(source_paths, dest_paths):
            logger.info(f"Deleting extra {self.label} path: {path}")
            try:
                self.remover(path)
            except Exception as e:
                logger.warning(f"Failed to delete {self.label} path {path}: {e}")
                errors.append(e)
            else:
                self.deleted.append(path)

        return errors
