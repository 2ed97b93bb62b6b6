"""
Player identity matching.

``playerctl --list-all`` returns instance-qualified names such as
``chromium.instance7723`` while the ``{{playerName}}`` field of metadata only
carries the base name ``chromium``.  A report is attributed to the selected
player when either name is the other plus a ``.suffix``.
"""


def is_same_logical_player(reported: str, selected: str) -> bool:
    """True if a metadata report from *reported* belongs to *selected*.

    An empty selection matches everything (no filter established yet).
    """
    if not selected:
        return True
    if reported == selected:
        return True
    if not reported:
        return False
    # selected is instance-qualified, reported is the base name
    if selected.startswith(reported + "."):
        return True
    # selected is the base name, reported is instance-qualified
    if reported.startswith(selected + "."):
        return True
    return False


def resolve_roster_id(reported: str, players) -> str:
    """Map a reported player name onto its roster identifier, if any.

    Exact matches win over prefix matches; otherwise the first roster entry
    that is the same logical player is returned.  Unknown names come back
    unchanged.
    """
    if reported in players:
        return reported
    for player in players:
        if player and is_same_logical_player(reported, player):
            return player
    return reported
