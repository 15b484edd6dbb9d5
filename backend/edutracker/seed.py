"""
Demo data loaded into an empty local cache.

Writes go straight to the local store so demo rows are never pushed to
the remote store.
"""

from edutracker.schemas import CompetencyRecord, ClassRoomRecord, StudentRecord, Standing, Shift
from edutracker.services.catalog import CompetencyCatalog
from edutracker.store import RecordStore, STUDENTS, CLASSES
from edutracker.logging_config import get_logger, log_with_context

logger = get_logger("db")

COMPETENCIES = [
    CompetencyRecord(id="p1", code="EF01LP01", name="Leitura e interpretação", subject="Português", grade="1º",
                     description="Reconhecer que textos são lidos e escritos da esquerda para a direita."),
    CompetencyRecord(id="p2", code="EF01LP02", name="Produção de textos", subject="Português", grade="1º",
                     description="Escrever, espontaneamente ou por ditado, palavras e frases."),
    CompetencyRecord(id="p3", code="EF01LP03", name="Consciência fonológica", subject="Português", grade="1º",
                     description="Identificar fonemas e sua representação por letras."),
    CompetencyRecord(id="m1", code="EF01MA01", name="Operações básicas", subject="Matemática", grade="1º",
                     description="Utilizar números naturais como indicador de quantidade ou de ordem."),
    CompetencyRecord(id="m2", code="EF01MA02", name="Resolução de problemas", subject="Matemática", grade="1º",
                     description="Contar de maneira exata ou aproximada."),
    CompetencyRecord(id="m3", code="EF01MA03", name="Raciocínio lógico", subject="Matemática", grade="1º",
                     description="Estimar e comparar quantidades de objetos."),
    CompetencyRecord(id="c1", code="EF01CI01", name="Seres vivos e meio ambiente", subject="Ciências", grade="1º",
                     description="Comparar características de diferentes materiais."),
    CompetencyRecord(id="c2", code="EF01CI02", name="Corpo humano e saúde", subject="Ciências", grade="1º",
                     description="Localizar, nomear e representar as partes do corpo humano."),
]

CLASSROOMS = [
    ClassRoomRecord(id="c-1", name="Turma A", grade="1º", shift=Shift.MORNING, teacher_id="prof-1"),
    ClassRoomRecord(id="c-2", name="Turma B", grade="2º", shift=Shift.AFTERNOON, teacher_id="prof-1"),
]

STUDENT_ROWS = [
    StudentRecord(id="s-1", name="Ana Silva", age=7, grade="1º", class_id="c-1", standing=Standing.ADEQUATE),
    StudentRecord(id="s-2", name="Bruno Gomes", age=7, grade="1º", class_id="c-1",
                  standing=Standing.NEEDS_REINFORCEMENT),
    StudentRecord(id="s-3", name="Carla Dias", age=7, grade="1º", class_id="c-1", standing=Standing.DEVELOPING),
    StudentRecord(id="s-4", name="Daniel Souza", age=8, grade="2º", class_id="c-2", standing=Standing.ADEQUATE),
]


def seed_if_empty(store: RecordStore) -> bool:
    """Load demo rows when the cache holds no students. Returns True if seeded."""
    if store.list(STUDENTS):
        return False
    catalog = CompetencyCatalog(store)
    for competency in COMPETENCIES:
        catalog.save(competency.model_copy())
    for classroom in CLASSROOMS:
        store.put(CLASSES, classroom.to_record())
    for student in STUDENT_ROWS:
        store.put(STUDENTS, student.to_record())
    log_with_context(logger, "INFO", "Seeded demo data",
                     extra_data={"students": len(STUDENT_ROWS), "classes": len(CLASSROOMS),
                                 "competencies": len(COMPETENCIES)})
    return True
