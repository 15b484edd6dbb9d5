"""Presentation labels (pt-BR) for domain enum values."""

from edutracker.schemas import (
    AchievementLevel, Standing, Bimester, AssessmentKind, Shift, InviteRole, InviteStatus
)

LABELS = {
    AchievementLevel.NOT_ACHIEVED: "Não atingiu",
    AchievementLevel.DEVELOPING: "Em desenvolvimento",
    AchievementLevel.ACHIEVED: "Atingiu",
    AchievementLevel.EXCEEDED: "Superou",
    Standing.ADEQUATE: "Adequado",
    Standing.DEVELOPING: "Em desenvolvimento",
    Standing.NEEDS_REINFORCEMENT: "Precisa de reforço",
    Bimester.B1: "1º Bimestre",
    Bimester.B2: "2º Bimestre",
    Bimester.B3: "3º Bimestre",
    Bimester.B4: "4º Bimestre",
    AssessmentKind.TEST: "Prova",
    AssessmentKind.PROJECT: "Trabalho",
    AssessmentKind.PARTICIPATION: "Participação",
    AssessmentKind.EXERCISE: "Exercício em Sala",
    AssessmentKind.OTHER: "Outros",
    Shift.MORNING: "Matutino",
    Shift.AFTERNOON: "Vespertino",
    InviteRole.TEACHER: "Professor",
    InviteRole.COORDINATOR: "Coordenador Pedagógico",
    InviteRole.MANAGER: "Gestor Escolar",
    InviteStatus.PENDING: "Pendente",
    InviteStatus.ACCEPTED: "Aceito",
}


def label(value) -> str:
    """Display label for an enum member; falls back to its raw value."""
    return LABELS.get(value, getattr(value, "value", str(value)))
