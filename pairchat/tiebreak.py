"""Deterministic choice of which room member creates the offer."""


def initiator_of(a: str, b: str) -> str:
    """Return the lesser of two distinct participant ids.

    Both members evaluate this independently on ``{own id, partner id}`` and
    agree without further coordination.
    """
    if a == b:
        raise AssertionError(f"Participant {a} cannot be paired with itself")
    return a if a < b else b


def is_initiator(own_id: str, partner_id: str) -> bool:
    return initiator_of(own_id, partner_id) == own_id


__all__ = ["initiator_of", "is_initiator"]
