from __future__ import annotations

from ..models.changeset import Changeset

"""Change summary rendering.

Two renderings of the same counts: a machine-greppable SUMMARY line for the log
and the short description shown to the user after a proposal is staged.
"""


def render_change_summary(changeset: Changeset) -> str:
    """Render the SUMMARY line for a changeset.

    Examples:
        >>> from fmeca_staging.models.changeset import Changeset
        >>> render_change_summary(Changeset(added=[{"FLOC": "B"}]))
        'SUMMARY added=1 modified=0 deleted=0 total=1'
    """
    return (
        f"SUMMARY added={len(changeset.added)} "
        f"modified={len(changeset.modified)} "
        f"deleted={len(changeset.deleted)} "
        f"total={changeset.total_changes}"
    )


def describe_changes(changeset: Changeset) -> str:
    return (
        f"{len(changeset.added)} added, "
        f"{len(changeset.modified)} modified, "
        f"{len(changeset.deleted)} deleted"
    )
