from dirreplica.exclusions import ExclusionSet


def test_names_match_case_insensitively() -> None:
    exclusions = ExclusionSet([".git", "Node_Modules"])

    assert ".GIT" in exclusions
    assert "node_modules" in exclusions
    assert "src" not in exclusions


def test_wildcard_entries_match_directory_names() -> None:
    exclusions = ExclusionSet(["*.egg-info", "build?"])

    assert exclusions.is_excluded("dirreplica.egg-info")
    assert exclusions.is_excluded("DIST.EGG-INFO")
    assert exclusions.is_excluded("build2")
    assert not exclusions.is_excluded("build")


def test_entries_are_normalized_and_deduplicated() -> None:
    exclusions = ExclusionSet([" .git/ ", ".GIT", "", "cache"])

    assert exclusions.entries == (".git", "cache")
    assert len(exclusions) == 2


def test_empty_set_is_falsy() -> None:
    assert not ExclusionSet()
    assert not ExclusionSet().is_excluded("anything")
