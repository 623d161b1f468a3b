"""
Reward roster and milestone resolution.

One dinosaur unlocks every REWARD_INTERVAL lifetime solves. Milestone m
(1-based) always maps to ROSTER[m - 1], so the same player progress yields
the same dinosaurs on every machine.

Roster order: the curated film line-up first, then every remaining name in
case-insensitive alphabetical order.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

REWARD_INTERVAL = 5
ROSTER_SIZE = 100

_CURATED_PREFIX: tuple[str, ...] = (
    "Tyrannosaurus Rex",
    "Velociraptor",
    "Triceratops",
    "Brachiosaurus",
    "Dilophosaurus",
    "Spinosaurus",
    "Stegosaurus",
    "Parasaurolophus",
    "Gallimimus",
    "Compsognathus",
    "Pteranodon",
    "Mosasaurus",
    "Indominus Rex",
    "Indoraptor",
    "Giganotosaurus",
    "Therizinosaurus",
    "Atrociraptor",
    "Pyroraptor",
    "Dimetrodon",
    "Sinoceratops",
)

_REMAINDER: tuple[str, ...] = (
    "Allosaurus", "Carnotaurus", "Baryonyx", "Ankylosaurus", "Pachycephalosaurus",
    "Dimorphodon", "Nasutoceratops", "Quetzalcoatlus", "Dreadnoughtus", "Oviraptor",
    "Corythosaurus", "Ceratosaurus", "Suchomimus", "Mamenchisaurus", "Metriacanthosaurus",
    "Edmontosaurus", "Microceratus", "Apatosaurus", "Stygimoloch", "Monolophosaurus",
    "Lystrosaurus", "Moros intrepidus", "Iguanodon", "Kentrosaurus", "Proceratosaurus",
    "Segisaurus", "Herrerasaurus", "Majungasaurus", "Concavenator", "Acrocanthosaurus",
    "Carcharodontosaurus", "Pachyrhinosaurus", "Albertosaurus", "Deinonychus", "Utahraptor",
    "Plateosaurus", "Coelophysis", "Ornithomimus", "Struthiomimus", "Hadrosaurus",
    "Lambeosaurus", "Maiasaura", "Protoceratops", "Amargasaurus", "Nigersaurus",
    "Dsungaripterus", "Tupandactylus", "Nothosaurus", "Plesiosaurus", "Ichthyosaurus",
    "Sarcosuchus", "Deinosuchus", "Kaprosuchus", "Megalosaurus", "Rajasaurus",
    "Irritator", "Gigantoraptor", "Europasaurus", "Scolosaurus", "Minmi",
    "Sauropelta", "Nodosaurus", "Polacanthus", "Gastonia", "Crichtonsaurus",
    "Mussaurus", "Lesothosaurus", "Scutellosaurus", "Pisanosaurus", "Eoraptor",
    "Chromogisaurus", "Panphagia", "Saturnalia", "Guaibasaurus", "Staurikosaurus",
    "Buriolestes", "Gnathovorax", "Bagualosaurus", "Nhandumirim", "Erythrovenator",
)


def _norm(name: str) -> str:
    return name.strip().casefold()


def build_roster(curated: tuple[str, ...], rest: tuple[str, ...]) -> tuple[str, ...]:
    curated_keys = {_norm(n) for n in curated}
    tail = sorted((n for n in rest if _norm(n) not in curated_keys), key=lambda n: (_norm(n), n))
    return tuple(curated) + tuple(tail)


def assert_valid_roster(roster: tuple[str, ...], expected_size: int = ROSTER_SIZE) -> None:
    if len(roster) != expected_size:
        raise ValueError(f"Roster must contain exactly {expected_size} entries, got {len(roster)}")
    if any(not n.strip() for n in roster):
        raise ValueError("Roster contains blank names")
    if len({_norm(n) for n in roster}) != len(roster):
        raise ValueError("Roster contains duplicate names")


ROSTER: tuple[str, ...] = build_roster(_CURATED_PREFIX, _REMAINDER)
assert_valid_roster(ROSTER)


@dataclass(frozen=True)
class ResolvedMilestone:
    milestone: int
    solved_count: int
    status: Literal["unlocked", "pool-exhausted"]
    subject_name: Optional[str] = None


def milestone_for(solved_count: int, interval: int = REWARD_INTERVAL) -> int:
    if solved_count < 0:
        raise ValueError("solved_count must be non-negative")
    return solved_count // interval


def subject_for_milestone(milestone: int, roster: tuple[str, ...] = ROSTER) -> Optional[str]:
    """Roster subject for a 1-based milestone, or None past the end of the pool."""
    if milestone < 1:
        raise ValueError("milestone must be >= 1")
    if milestone > len(roster):
        return None
    return roster[milestone - 1]


def resolve_milestones(
    old_solved: int,
    new_solved: int,
    interval: int = REWARD_INTERVAL,
    roster: tuple[str, ...] = ROSTER,
) -> list[ResolvedMilestone]:
    """
    Every milestone crossed going from old_solved to new_solved, ascending.

    Jumps larger than one interval still yield each intervening milestone,
    so nothing is skipped.
    """
    first = milestone_for(old_solved, interval) + 1
    last = milestone_for(new_solved, interval)
    out = []
    for m in range(first, last + 1):
        subject = subject_for_milestone(m, roster)
        out.append(ResolvedMilestone(
            milestone=m,
            solved_count=m * interval,
            status="unlocked" if subject is not None else "pool-exhausted",
            subject_name=subject,
        ))
    return out


def should_prefetch(count: int, interval: int = REWARD_INTERVAL) -> bool:
    """True one or two problems ahead of the next milestone."""
    return count % interval in (interval - 2, interval - 1)


def next_milestone_subject(
    solved_count: int,
    interval: int = REWARD_INTERVAL,
    roster: tuple[str, ...] = ROSTER,
) -> Optional[str]:
    return subject_for_milestone(milestone_for(solved_count, interval) + 1, roster)
