"""
Prerequisite graph helpers.

Edges point from prerequisite to dependent. Only edges between skills of the
given set are considered; cross-quest prerequisites are resolved elsewhere.
"""

import heapq
import uuid
from typing import Dict, List, Optional, Sequence

from src.kernel.errors import InvalidStateError
from src.schemas.skill import Skill


def topological_order(skills: Sequence[Skill]) -> List[Skill]:
    """
    Kahn's algorithm, ties broken by (depth, input position).

    Raises InvalidStateError if the in-set prerequisite edges contain a cycle.
    """
    position = {skill.id: i for i, skill in enumerate(skills)}
    by_id = {skill.id: skill for skill in skills}
    indegree: Dict[uuid.UUID, int] = {skill.id: 0 for skill in skills}
    dependents: Dict[uuid.UUID, List[uuid.UUID]] = {skill.id: [] for skill in skills}

    for skill in skills:
        for prereq_id in set(skill.prerequisite_skill_ids):
            if prereq_id in by_id:
                indegree[skill.id] += 1
                dependents[prereq_id].append(skill.id)

    ready = [
        (by_id[sid].depth, position[sid], sid) for sid, degree in indegree.items() if degree == 0
    ]
    heapq.heapify(ready)
    ordered: List[Skill] = []
    while ready:
        _, _, sid = heapq.heappop(ready)
        ordered.append(by_id[sid])
        for dep_id in dependents[sid]:
            indegree[dep_id] -= 1
            if indegree[dep_id] == 0:
                heapq.heappush(ready, (by_id[dep_id].depth, position[dep_id], dep_id))

    if len(ordered) != len(skills):
        cycle = find_cycle(skills) or []
        raise InvalidStateError(
            "Prerequisite graph contains a cycle",
            {"cycle": [str(sid) for sid in cycle]},
        )
    return ordered


def find_cycle(skills: Sequence[Skill]) -> Optional[List[uuid.UUID]]:
    """Return one cycle as a list of ids (first id repeated at the end), or None."""
    by_id = {skill.id: skill for skill in skills}
    WHITE, GREY, BLACK = 0, 1, 2
    color = {sid: WHITE for sid in by_id}

    for root in by_id:
        if color[root] != WHITE:
            continue
        # iterative DFS following prerequisite edges
        path: List[uuid.UUID] = []
        stack = [(root, iter(by_id[root].prerequisite_skill_ids))]
        color[root] = GREY
        path.append(root)
        while stack:
            node, edges = stack[-1]
            advanced = False
            for nxt in edges:
                if nxt not in by_id:
                    continue
                if color[nxt] == GREY:
                    return path[path.index(nxt):] + [nxt]
                if color[nxt] == WHITE:
                    color[nxt] = GREY
                    path.append(nxt)
                    stack.append((nxt, iter(by_id[nxt].prerequisite_skill_ids)))
                    advanced = True
                    break
            if not advanced:
                color[node] = BLACK
                path.pop()
                stack.pop()
    return None
