import pytest

from reactive_hub.errors import InvalidLocation, ValidationFailed
from reactive_hub.models.enums import Role, UserStatus
from reactive_hub.services.geo_match import (
    Candidate,
    find_matches,
    haversine_distance_km,
    load_candidates,
    match_contractors_for_job,
)

from conftest import LONDON

KM_PER_DEGREE_LAT = 6371.0 * 3.141592653589793 / 180.0


def north_of(origin, km):
    return (origin[0] + km / KM_PER_DEGREE_LAT, origin[1])


def candidate(user_id, point):
    return Candidate(user_id=user_id, latitude=point[0], longitude=point[1])


def test_haversine_zero_and_known_distance():
    assert haversine_distance_km(*LONDON, *LONDON) == pytest.approx(0.0)
    # London to Paris is roughly 344 km
    assert haversine_distance_km(51.5074, -0.1278, 48.8566, 2.3522) == pytest.approx(343.5, abs=1.0)


def test_london_contractor_within_range_and_far_one_excluded():
    near = candidate(1, north_of(LONDON, 5))
    far = candidate(2, north_of(LONDON, 150))

    matches = find_matches(LONDON[0], LONDON[1], [far, near], max_distance_km=100)

    assert [m.candidate.user_id for m in matches] == [1]
    assert matches[0].display_distance_km == pytest.approx(5.0, abs=0.05)


def test_boundary_distance_is_inclusive():
    point = north_of(LONDON, 40)
    exact = haversine_distance_km(LONDON[0], LONDON[1], *point)

    assert len(find_matches(LONDON[0], LONDON[1], [candidate(1, point)], max_distance_km=exact)) == 1
    assert find_matches(LONDON[0], LONDON[1], [candidate(1, point)], max_distance_km=exact - 0.1) == []


def test_sorted_by_unrounded_distance_with_stable_ties():
    a = candidate(1, north_of(LONDON, 10.04))
    b = candidate(2, north_of(LONDON, 10.01))
    c = candidate(3, north_of(LONDON, 10.01))

    matches = find_matches(LONDON[0], LONDON[1], [a, b, c])

    assert [m.candidate.user_id for m in matches] == [2, 3, 1]
    # All three display the same rounded distance
    assert {m.display_distance_km for m in matches} == {10.0}


def test_limit_truncates_after_sorting():
    cands = [candidate(i, north_of(LONDON, 30 - i)) for i in range(1, 6)]

    matches = find_matches(LONDON[0], LONDON[1], cands, limit=2)

    assert [m.candidate.user_id for m in matches] == [5, 4]


def test_candidates_without_coordinates_are_skipped():
    cands = [Candidate(user_id=1, latitude=None, longitude=-0.1), candidate(2, LONDON)]
    assert [m.candidate.user_id for m in find_matches(LONDON[0], LONDON[1], cands)] == [2]


def test_missing_job_location_raises_invalid_location():
    with pytest.raises(InvalidLocation):
        find_matches(None, LONDON[1], [candidate(1, LONDON)])


@pytest.mark.parametrize("kwargs", [{"max_distance_km": 0}, {"max_distance_km": -5}, {"limit": 0}])
def test_rejects_bad_search_parameters(kwargs):
    with pytest.raises(ValidationFailed):
        find_matches(LONDON[0], LONDON[1], [], **kwargs)


def test_to_dict_rounds_for_display():
    match = find_matches(LONDON[0], LONDON[1], [candidate(7, north_of(LONDON, 12.345))])[0]
    data = match.to_dict()
    assert data["id"] == 7
    assert data["distance_km"] == 12.3
    assert "contractor_profile" in data


def test_load_candidates_only_active_located_contractors(db, make_user):
    located = make_user(Role.SUBCONTRACTOR, latitude=LONDON[0], longitude=LONDON[1], skills=["roofing"])
    make_user(Role.SUBCONTRACTOR)  # no coordinates
    suspended = make_user(Role.SUBCONTRACTOR, latitude=LONDON[0], longitude=LONDON[1])
    suspended.status = UserStatus.SUSPENDED
    db.commit()
    make_user(Role.CUST_RESIDENTIAL)

    cands = load_candidates(db)

    assert [c.user_id for c in cands] == [located.id]
    assert cands[0].skills == ["roofing"]


def test_match_contractors_for_job_uses_job_location(db, make_user, customer, make_job):
    near = make_user(Role.SUBCONTRACTOR, latitude=north_of(LONDON, 5)[0], longitude=LONDON[1])
    make_user(Role.SUBCONTRACTOR, latitude=north_of(LONDON, 150)[0], longitude=LONDON[1])
    job = make_job(customer)

    matches = match_contractors_for_job(db, job, max_distance_km=100)

    assert [m.candidate.user_id for m in matches] == [near.id]


def test_match_contractors_for_job_without_location(db, customer, make_job):
    job = make_job(customer, latitude=None, longitude=None)
    with pytest.raises(InvalidLocation):
        match_contractors_for_job(db, job)
