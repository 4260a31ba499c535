from __future__ import annotations

import math
from typing import AbstractSet, List, Mapping, Sequence

from app.integrations.salla.normalizers import CandidateOrder


def rank(
    candidates: Sequence[CandidateOrder],
    priority_ranks: Mapping[str, int],
    already_claimed: AbstractSet[str],
) -> List[CandidateOrder]:
    """
    去掉已被认领的候选单，再按 (加急名次, 拉取顺序) 稳定排序：
      - 在加急名单里的排前面，名次越小越靠前；不在名单里的名次为 +inf；
      - 同组内保持最旧优先的拉取顺序。
    """
    remaining = [c for c in candidates if c.order_id not in already_claimed]
    return sorted(
        remaining,
        key=lambda c: (priority_ranks.get(c.order_id, math.inf), c.fetch_position),
    )
