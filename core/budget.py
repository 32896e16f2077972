"""Per-target share of a fixed budget (comments per post, tokens per URL)."""

from dataclasses import dataclass

__all__ = ["Allocation", "allocate"]


@dataclass(frozen=True)
class Allocation:
    total_budget: int
    target_count: int
    per_target_base: int
    per_target_capped: int


def allocate(total_budget: int, target_count: int, per_target_cap: int) -> Allocation:
    """
    Split ``total_budget`` evenly across ``target_count`` targets.

    ``per_target_base`` is the floored even share (the whole budget when
    there are no targets) and ``per_target_capped`` clamps it to
    ``per_target_cap``. Budget left unused by capped targets is not handed
    back to the others.
    """
    if target_count <= 0:
        base = total_budget
    else:
        base = total_budget // target_count
    return Allocation(
        total_budget=total_budget,
        target_count=target_count,
        per_target_base=base,
        per_target_capped=min(base, per_target_cap),
    )
