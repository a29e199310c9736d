import pytest

from finance_tracker.categories import (
    UNCATEGORIZED_ID,
    delete_category,
    get_children,
    load_categories,
    normalize_category_id,
    rollup_totals,
    root_of,
    save_category,
    validate_category_id,
    validate_parent,
)
from finance_tracker.models import Category


def test_defaults_include_system_categories():
    index = {c.id: c for c in load_categories()}
    assert index[UNCATEGORIZED_ID].is_system
    assert index['transfer'].is_system
    assert index['groceries'].parent_id == 'food'


def test_normalize_blank_ids():
    assert normalize_category_id(None) == UNCATEGORIZED_ID
    assert normalize_category_id('  ') == UNCATEGORIZED_ID
    assert normalize_category_id(' food ') == 'food'


def test_validate_category_id_rejects_unknown():
    categories = load_categories()
    assert validate_category_id('', categories) == UNCATEGORIZED_ID
    with pytest.raises(ValueError):
        validate_category_id('nope', categories)


def test_root_and_children():
    categories = load_categories()
    assert root_of(categories, 'groceries') == 'food'
    assert root_of(categories, 'food') == 'food'
    assert root_of(categories, 'unknown') == 'unknown'
    assert [c.id for c in get_children(categories, 'food')] == ['groceries', 'restaurants', 'delivery']


def test_rollup_totals_adds_children_to_parent():
    totals = {'groceries': 100.0, 'restaurants': 50.0, 'fuel': 20.0, 'mystery': 5.0}
    rolled = rollup_totals(totals, load_categories())
    assert rolled == {'food': 150.0, 'transport': 20.0, 'mystery': 5.0}


def test_validate_parent_detects_cycles():
    categories = [
        Category(id='a', name='A'),
        Category(id='b', name='B', parent_id='a'),
    ]
    with pytest.raises(ValueError, match='cycle'):
        validate_parent(Category(id='a', name='A', parent_id='b'), categories)
    with pytest.raises(ValueError):
        validate_parent(Category(id='c', name='C', parent_id='missing'), categories)


def test_save_and_delete_custom_category():
    save_category(Category(id='pets', name='Pets', is_custom=True))
    save_category(Category(id='vet', name='Vet', parent_id='pets', is_custom=True))
    ids = {c.id for c in load_categories()}
    assert {'pets', 'vet'} <= ids

    with pytest.raises(ValueError):
        delete_category('pets')
    assert delete_category('vet') is True
    assert delete_category('pets') is True
    assert delete_category('pets') is False


def test_system_categories_are_protected():
    with pytest.raises(ValueError):
        save_category(Category(id=UNCATEGORIZED_ID, name='Renamed'))
    with pytest.raises(ValueError):
        delete_category('transfer')
