"""
Status Derivation Engine - maps an achievement level to a student standing.

The most recently recorded evaluation, regardless of competency, sets the
student's aggregate standing. There is no aggregation across competencies.
"""

from edutracker.schemas import AchievementLevel, Standing

STANDING_BY_LEVEL = {
    AchievementLevel.NOT_ACHIEVED: Standing.NEEDS_REINFORCEMENT,
    AchievementLevel.DEVELOPING: Standing.DEVELOPING,
    AchievementLevel.ACHIEVED: Standing.ADEQUATE,
    AchievementLevel.EXCEEDED: Standing.ADEQUATE,
}


def derive_standing(level: AchievementLevel) -> Standing:
    """Standing implied by a single evaluation's achievement level."""
    return STANDING_BY_LEVEL[AchievementLevel(level)]


def discharge_standing(level: AchievementLevel) -> Standing:
    """
    Standing assigned when a student leaves a reinforcement group.

    Achieved or exceeded gives adequate; anything else, including
    not-achieved, gives developing since the student is exiting the program.
    """
    if AchievementLevel(level) in (AchievementLevel.ACHIEVED, AchievementLevel.EXCEEDED):
        return Standing.ADEQUATE
    return Standing.DEVELOPING
