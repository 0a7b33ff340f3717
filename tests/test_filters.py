"""
Unit tests for candidate selection rules and per-channel caps.
"""

from backend.app.core.filters import CandidateFilter, apply_caps, group_by_platform, is_plausible_email

from fakes import make_candidate


def test_plausible_email_accepts_normal_address():
    assert is_plausible_email("jan@bakkerij.nl")
    assert is_plausible_email("  Jan.Jansen@Bakkerij-Westland.NL ")


def test_plausible_email_rejects_malformed():
    for email in (None, "", "a@b.c", "jan.bakkerij.nl", "jan@@bakkerij.nl", "jan@bak@kerij.nl",
                  "@bakkerij.nl", "jan@bakkerij"):
        assert not is_plausible_email(email), email


def test_plausible_email_rejects_excluded_fragment():
    assert not is_plausible_email("noreply@nationalevacaturebank.nl")


def test_filter_rejects_customer_and_large_companies():
    f = CandidateFilter()
    assert f.matches(make_candidate())
    assert not f.matches(make_candidate(company_pipedrive_id="123"))
    assert not f.matches(make_candidate(company_category_size="Groot"))
    assert not f.matches(make_candidate(instantly_campaign_id=None))


def test_filter_scoped_to_platform():
    f = CandidateFilter(platform_id="platform-rotterdam")
    assert not f.matches(make_candidate())
    assert f.matches(make_candidate(platform_id="platform-rotterdam"))


def test_fallback_predicates_match_rpc_rules():
    f = CandidateFilter(excluded_source_id="source-x")
    contact = {"email": "jan@bakkerij.nl", "qualification_status": "qualified"}
    assert f.contact_matches(contact)
    assert not f.contact_matches({**contact, "qualification_status": "disqualified"})
    assert not f.contact_matches({**contact, "campaign_id": "c-1"})

    company = {"status": "Prospect", "category_size": "Klein"}
    assert f.company_matches(company)
    assert not f.company_matches({**company, "status": "Klant"})
    assert not f.company_matches({**company, "pipedrive_id": "55"})
    assert not f.company_matches(None)

    posting = {"platform_id": "p-1", "source_id": "source-y", "platforms": {"instantly_campaign_id": "c-1"}}
    assert f.posting_matches(posting)
    assert not f.posting_matches({**posting, "source_id": "source-x"})
    assert not f.posting_matches({**posting, "platforms": {"instantly_campaign_id": None}})


def test_rpc_params_carry_filter():
    params = CandidateFilter(excluded_source_id="source-x", platform_id="p-1").rpc_params(100, 10)
    assert params["p_max_total"] == 100
    assert params["p_max_per_platform"] == 10
    assert params["p_excluded_source_id"] == "source-x"
    assert params["p_platform_id"] == "p-1"


def test_caps_per_platform_and_total():
    candidates = [make_candidate(i, platform_id="a") for i in range(10)]
    candidates += [make_candidate(i, platform_id="b") for i in range(10, 13)]

    selected = apply_caps(candidates, max_total=6, max_per_platform=4)

    assert len(selected) == 6
    per_platform = {pid: len(group) for pid, group in group_by_platform(selected).items()}
    assert per_platform["a"] <= 4
    assert per_platform["b"] <= 4


def test_caps_round_robin_across_platforms():
    candidates = [make_candidate(i, platform_id="a") for i in range(3)]
    candidates += [make_candidate(i, platform_id="b") for i in range(3, 6)]

    selected = apply_caps(candidates, max_total=4, max_per_platform=10)

    assert [c.platform_id for c in selected] == ["a", "b", "a", "b"]


def test_caps_drop_duplicate_contacts():
    first = make_candidate(1, platform_id="a")
    again = make_candidate(1, platform_id="b")

    selected = apply_caps([first, again], max_total=10, max_per_platform=10)

    assert selected == [first]
