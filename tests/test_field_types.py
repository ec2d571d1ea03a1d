from __future__ import annotations

import pytest

from formfill.templates.field_types import infer_semantic_type, native_semantic_type
from formfill.templates.models import FieldDescriptor, SemanticType


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("accept_terms", SemanticType.BOOLEAN),
        ("subscribed", SemanticType.BOOLEAN),
        ("autovehicul_electric", SemanticType.BOOLEAN),
        ("judet", SemanticType.SINGLE_CHOICE),
        ("department", SemanticType.SINGLE_CHOICE),
        ("data_eliberare", SemanticType.DATE),
        ("start_date", SemanticType.DATE),
        ("telefon", SemanticType.NUMBER),
        ("cod_postal", SemanticType.NUMBER),
        ("comments", SemanticType.TEXT),
        ("email", SemanticType.TEXT),
    ],
)
def test_infer_semantic_type_from_name(name: str, expected: SemanticType) -> None:
    assert infer_semantic_type(name) is expected


def test_earlier_rule_wins_over_later_rule() -> None:
    # "checkbox" is a boolean keyword even though "date" also appears.
    assert infer_semantic_type("date_checkbox") is SemanticType.BOOLEAN


def test_native_types_map_widget_kinds() -> None:
    assert native_semantic_type("checkbox") is SemanticType.BOOLEAN
    assert native_semantic_type("radio") is SemanticType.SINGLE_CHOICE
    assert native_semantic_type("combobox") is SemanticType.SINGLE_CHOICE
    assert native_semantic_type("listbox") is SemanticType.SINGLE_CHOICE
    assert native_semantic_type("listbox", multi_select=True) is SemanticType.MULTI_CHOICE
    assert native_semantic_type("text") is SemanticType.TEXT


def test_choice_options_dropped_for_non_choice_descriptor() -> None:
    descriptor = FieldDescriptor(name="comments", choice_options=("a", "b"))

    assert descriptor.choice_options == ()
    assert "choice_options" not in descriptor.to_dict()


def test_descriptor_requires_name() -> None:
    with pytest.raises(ValueError):
        FieldDescriptor(name="")
