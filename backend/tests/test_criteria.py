from schemas import ClientInfo, Criteria
from services.criteria import matches
from tests.fakes import make_context

IOS = "iPhone OS"


def _context(version=5, groups=("g1",), languages=()):
    return make_context(
        client_info=ClientInfo(app_name="App", app_version=version, os_name=IOS),
        data_groups=set(groups),
        languages=list(languages),
    )


def _criteria(**kwargs):
    kwargs.setdefault("min_app_versions", {IOS: 2})
    kwargs.setdefault("max_app_versions", {IOS: 10})
    kwargs.setdefault("all_of_groups", {"g1"})
    kwargs.setdefault("none_of_groups", {"g2"})
    return Criteria(**kwargs)


def test_version_range_and_groups_match():
    assert matches(_criteria(), _context(version=5, groups={"g1"}))


def test_version_above_maximum_does_not_match():
    assert not matches(_criteria(), _context(version=11))


def test_version_below_minimum_does_not_match():
    assert not matches(_criteria(), _context(version=1))


def test_bounds_are_inclusive():
    assert matches(_criteria(), _context(version=2))
    assert matches(_criteria(), _context(version=10))


def test_prohibited_group_does_not_match():
    assert not matches(_criteria(), _context(groups={"g1", "g2"}))


def test_missing_required_group_does_not_match():
    assert not matches(_criteria(), _context(groups={"g3"}))


def test_empty_criteria_matches_everyone():
    assert matches(Criteria(), _context(version=1, groups=()))
    assert matches(None, _context())


def test_bounds_for_other_platform_are_ignored():
    criteria = Criteria(min_app_versions={"Android": 50})
    assert matches(criteria, _context(version=5, groups=()))


def test_unknown_client_is_not_excluded_by_version():
    context = make_context(client_info=ClientInfo(), data_groups={"g1"})
    assert matches(_criteria(), context)


def test_language_must_be_accepted():
    criteria = Criteria(language="de")
    assert matches(criteria, _context(languages=["en", "de"]))
    assert matches(criteria, _context(languages=["DE"]))
    assert not matches(criteria, _context(languages=["en"]))
    assert not matches(criteria, _context(languages=[]))


def test_criteria_parse_from_camel_case_document():
    criteria = Criteria.model_validate(
        {"minAppVersions": {IOS: 2}, "allOfGroups": ["g1"], "noneOfGroups": [], "language": "en"}
    )
    assert criteria.min_app_versions == {IOS: 2}
    assert criteria.all_of_groups == {"g1"}


def test_regional_language_tags_match_on_primary_subtag():
    assert matches(Criteria(language="en-US"), _context(languages=["en"]))
    assert matches(Criteria(language="en"), _context(languages=["fr", "en-GB"]))
    assert not matches(Criteria(language="en-US"), _context(languages=["de"]))
