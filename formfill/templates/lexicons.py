"""Domain lexicons: field names and signal phrases of known form families."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType


@dataclass(frozen=True)
class DomainLexicon:
    """Fixed vocabulary for one template family."""

    field_names: tuple[str, ...]
    signal_phrases: frozenset[str]


ECOTICHET_RO_LEXICON = DomainLexicon(
    field_names=(
        "beneficiar_minor",
        "tip_autovehicul",
        "nume_solicitant",
        "prenume_solicitant",
        "cod_numeric_personal",
        "seria",
        "numar",
        "eliberat_de",
        "data_eliberare",
        "domiciliu_judet",
        "localitate",
        "strada",
        "numar_strada",
        "bloc",
        "scara",
        "etaj",
        "apartament",
        "cod_postal",
        "telefon",
        "email",
        "reprezentant_legal",
        "imputernicit",
        "nume_reprezentant",
        "prenume_reprezentant",
        "suma_solicitata",
        "numar_ecotichete",
        "autovehicul_electric",
        "autovehicul_hibrid",
    ),
    signal_phrases=frozenset(
        {
            "administratia fondului pentru mediu",
            "ecotichet",
            "programul rabla",
            "cod numeric personal",
        }
    ),
)


EMPLOYEE_ONBOARDING_LEXICON = DomainLexicon(
    field_names=(
        "first_name",
        "last_name",
        "email",
        "phone",
        "department",
        "position",
        "start_date",
        "salary",
        "full_time",
        "part_time",
        "remote_work",
        "benefits_eligible",
        "comments",
    ),
    signal_phrases=frozenset({"employee information form"}),
)


LEXICONS: Mapping[str, DomainLexicon] = MappingProxyType(
    {
        "ecotichet_ro": ECOTICHET_RO_LEXICON,
        "employee_onboarding": EMPLOYEE_ONBOARDING_LEXICON,
    }
)


def get_lexicon(name: str) -> DomainLexicon:
    """Return a registered lexicon by name."""

    try:
        return LEXICONS[name]
    except KeyError as exc:
        raise ValueError(f"Unsupported lexicon: {name}") from exc


def list_lexicons() -> list[str]:
    """Return registered lexicon names in stable order."""

    return sorted(LEXICONS)
