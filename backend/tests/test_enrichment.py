"""
Tests for enrichment.py - cache-or-call enrichment pipeline

The completion client is a scripted fake, so every assertion on model
traffic is a call-count assertion.
"""
import threading
import time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from linkify.core.config import get_settings
from linkify.core.db import Base
from linkify.core.errors import ClientInputError, NormalizationError, NotFoundError, UpstreamError
from linkify.models.analysis_session import AnalysisSession
from linkify.models.company import Company
from linkify.services.enrichment import EnrichmentOrchestrator, _persona_and_score
from linkify.services.locks import LocalKeyedLock
from linkify.services.store import RecordStore

from tests.fixtures.llm_fixtures import (
    ACCOUNT_ANALYSIS,
    COMPANY_ANALYSIS,
    NO_JSON_AT_ALL,
    PERSON_ANALYSIS,
    FakeCompletionClient,
    fenced_with_trailing_commas,
    strict,
)

COMPANY_URL = "https://www.linkedin.com/company/globex/?trk=nav"
PERSON_URL = "https://www.linkedin.com/in/jane-doe/"
DOM = {"company_name": "Globex", "about": "Freight brokerage"}
PROFILE = {"name": "Jane Doe", "headline": "VP of Sales at Globex"}


# ---------------------------------------------------------------------------
# Company enrichment
# ---------------------------------------------------------------------------

class TestAnalyzeCompany:

    def test_cold_start_makes_two_calls_then_none(self, orchestrator, fake_completion, user):
        """Empty seller + unknown buyer: two calls first time, zero on repeat."""
        fake_completion.script(strict(ACCOUNT_ANALYSIS), fenced_with_trailing_commas(COMPANY_ANALYSIS))

        first = orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")
        assert fake_completion.call_count == 2
        assert first["fromCache"] is False
        assert first["company"]["linkedin_url"] == "https://www.linkedin.com/company/globex"
        assert first["company"]["analysis_data"] == COMPANY_ANALYSIS
        assert first["company"]["account_company_data"]["analysis_data"] == ACCOUNT_ANALYSIS

        second = orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")
        assert fake_completion.call_count == 2
        assert second["fromCache"] is True
        assert second["company"]["analysis_data"] == first["company"]["analysis_data"]

    def test_seller_analysis_is_populated_only_once(self, orchestrator, fake_completion, store, user):
        fake_completion.script(
            strict(ACCOUNT_ANALYSIS),
            strict(COMPANY_ANALYSIS),
            strict(COMPANY_ANALYSIS),
        )
        orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")
        orchestrator.analyze_company(user.id, "https://www.linkedin.com/company/initech", DOM, "acme.io")

        assert fake_completion.call_count == 3
        account = store.get_account_company_by_domain("acme.io")
        assert account.analysis_data == ACCOUNT_ANALYSIS

    def test_buyer_prompt_carries_seller_context_and_dom(self, orchestrator, fake_completion, store, user):
        store.update_account_company_analysis("acme.io", ACCOUNT_ANALYSIS)
        fake_completion.script(strict(COMPANY_ANALYSIS))

        orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")

        assert fake_completion.call_count == 1
        user_turn = fake_completion.calls[0][-1]["content"]
        assert "Acme Analytics" in user_turn
        assert "Freight brokerage" in user_turn
        assert "https://www.linkedin.com/company/globex" in user_turn

    def test_unknown_account_domain_is_created_and_analysed(self, orchestrator, fake_completion, store, user):
        fake_completion.script(strict(ACCOUNT_ANALYSIS), strict(COMPANY_ANALYSIS))
        orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "brand-new.dev")
        assert store.get_account_company_by_domain("brand-new.dev").analysis_data == ACCOUNT_ANALYSIS

    def test_company_is_linked_to_account_company(self, orchestrator, fake_completion, store, user):
        fake_completion.script(strict(ACCOUNT_ANALYSIS), strict(COMPANY_ANALYSIS))
        orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")
        company = store.get_company_by_linkedin_url(user.id, COMPANY_URL)
        assert company.account_company_id == store.get_account_company_by_domain("acme.io").id

    def test_saved_page_without_analysis_is_a_cache_miss(self, orchestrator, fake_completion, store, user):
        store.update_account_company_analysis("acme.io", ACCOUNT_ANALYSIS)
        store.upsert_company(user.id, COMPANY_URL, page_data={"company_name": "Globex"})
        fake_completion.script(strict(COMPANY_ANALYSIS))

        result = orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")

        assert result["fromCache"] is False
        assert store.db.query(Company).filter(Company.user_id == user.id).count() == 1

    @pytest.mark.parametrize("url, dom, domain, field", [
        (None, DOM, "acme.io", "linkedin_url"),
        ("", DOM, "acme.io", "linkedin_url"),
        (COMPANY_URL, DOM, None, "accountDomain"),
        (COMPANY_URL, None, "acme.io", "domData"),
        (COMPANY_URL, {}, "acme.io", "domData"),
    ])
    def test_missing_fields_fail_before_any_call(self, orchestrator, fake_completion, store, user, url, dom, domain, field):
        with pytest.raises(ClientInputError) as exc:
            orchestrator.analyze_company(user.id, url, dom, domain)
        assert field in exc.value.message
        assert fake_completion.call_count == 0
        assert store.db.query(Company).count() == 0

    def test_unparseable_buyer_analysis_fails_and_persists_nothing(self, orchestrator, fake_completion, store, user):
        store.update_account_company_analysis("acme.io", ACCOUNT_ANALYSIS)
        fake_completion.script(NO_JSON_AT_ALL)
        with pytest.raises(NormalizationError):
            orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")
        assert store.get_company_by_linkedin_url(user.id, COMPANY_URL) is None

    def test_unparseable_seller_analysis_leaves_account_empty(self, orchestrator, fake_completion, store, user):
        fake_completion.script(NO_JSON_AT_ALL)
        with pytest.raises(NormalizationError):
            orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")
        assert fake_completion.call_count == 1
        assert store.get_account_company_by_domain("acme.io").analysis_data == {}

    def test_upstream_failure_propagates(self, orchestrator, fake_completion, store, user):
        fake_completion.script(UpstreamError(retryable=True))
        with pytest.raises(UpstreamError):
            orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")
        assert store.db.query(AnalysisSession).count() == 0

    def test_every_completion_is_recorded(self, orchestrator, fake_completion, store, user):
        fake_completion.script(strict(ACCOUNT_ANALYSIS), strict(COMPANY_ANALYSIS))
        orchestrator.analyze_company(user.id, COMPANY_URL, DOM, "acme.io")

        sessions = store.list_analysis_sessions(user.id)
        assert sorted(s.session_type for s in sessions) == ["account_analysis", "persona_analysis"]
        assert all(s.api_usage["total_tokens"] == 600 for s in sessions)
        assert all(s.api_usage["model"] == "sonar-pro" for s in sessions)


# ---------------------------------------------------------------------------
# Persona updates
# ---------------------------------------------------------------------------

class TestUpdatePersonas:

    def test_attaches_people_data(self, orchestrator, store, user):
        store.update_account_company_analysis("acme.io", ACCOUNT_ANALYSIS)
        store.upsert_company(user.id, COMPANY_URL, analysis_data=COMPANY_ANALYSIS)
        people = [{"name": "Jane Doe", "title": "VP Sales"}]

        result = orchestrator.update_personas(user.id, COMPANY_URL + "&x=1", people, "acme.io")

        assert result["company"]["persona"] == people
        assert result["company"]["analysis_data"] == COMPANY_ANALYSIS
        assert result["company"]["account_company_data"]["domain"] == "acme.io"
        assert store.get_company_by_linkedin_url(user.id, COMPANY_URL).persona == people

    def test_unknown_company_is_not_found_and_not_created(self, orchestrator, store, user):
        with pytest.raises(NotFoundError):
            orchestrator.update_personas(user.id, COMPANY_URL, [{"name": "x"}], "acme.io")
        assert store.db.query(Company).count() == 0

    @pytest.mark.parametrize("url, people", [(None, [{"n": 1}]), (COMPANY_URL, None), (COMPANY_URL, [])])
    def test_missing_fields(self, orchestrator, user, url, people):
        with pytest.raises(ClientInputError):
            orchestrator.update_personas(user.id, url, people, "acme.io")


# ---------------------------------------------------------------------------
# Person enrichment
# ---------------------------------------------------------------------------

class TestAnalyzePerson:

    def test_second_call_is_served_from_store(self, orchestrator, fake_completion, user):
        fake_completion.script(strict(PERSON_ANALYSIS))

        first = orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)
        second = orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)

        assert first["fromCache"] is False
        assert second["fromCache"] is True
        assert first["analysis"] == second["analysis"] == PERSON_ANALYSIS
        assert fake_completion.call_count == 1

    def test_new_prospect_gets_profile_snapshot_and_derived_fields(self, orchestrator, fake_completion, store, user):
        fake_completion.script(strict(PERSON_ANALYSIS))
        orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)

        prospect = store.get_prospect_by_linkedin_url(user.id, PERSON_URL)
        assert prospect.profile_data == PROFILE
        assert prospect.persona_match == "decision_maker"
        assert prospect.score == 8
        assert prospect.account_company_id == store.get_account_company_by_domain("acme.io").id

    def test_existing_prospect_without_analysis_is_updated_in_place(self, orchestrator, fake_completion, store, user):
        existing, _ = store.upsert_prospect(user.id, PERSON_URL, profile_data={"name": "from extension"})
        fake_completion.script(strict(PERSON_ANALYSIS))

        orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)

        prospect = store.get_prospect_by_linkedin_url(user.id, PERSON_URL)
        assert prospect.id == existing.id
        assert prospect.analysis_data == PERSON_ANALYSIS
        assert prospect.profile_data == {"name": "from extension"}

    def test_seller_blob_is_read_not_created(self, orchestrator, fake_completion, store, user):
        fake_completion.script(strict(PERSON_ANALYSIS))
        orchestrator.analyze_person(user.id, PERSON_URL, "unknown-seller.com", PROFILE)
        assert store.get_account_company_by_domain("unknown-seller.com") is None
        assert fake_completion.call_count == 1

    def test_malformed_output_persists_fallback_record(self, orchestrator, fake_completion, store, user):
        fake_completion.script(NO_JSON_AT_ALL)

        result = orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)

        assert result["fromCache"] is False
        assert result["analysis"]["PersonDetails"]["name"] == "Analysis Failed"
        prospect = store.get_prospect_by_linkedin_url(user.id, PERSON_URL)
        assert prospect.analysis_data == result["analysis"]
        assert prospect.persona_match is None

    def test_fail_policy_raises_instead(self, store, fake_completion, user):
        settings = get_settings().model_copy(update={"PERSON_ANALYSIS_PARSE_POLICY": "fail"})
        strict_orchestrator = EnrichmentOrchestrator(store, fake_completion, LocalKeyedLock(), settings)
        fake_completion.script(NO_JSON_AT_ALL)
        with pytest.raises(NormalizationError):
            strict_orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)
        assert store.get_prospect_by_linkedin_url(user.id, PERSON_URL) is None

    @pytest.mark.parametrize("url, domain, data", [
        (None, "acme.io", PROFILE),
        (PERSON_URL, None, PROFILE),
        (PERSON_URL, "acme.io", None),
    ])
    def test_missing_fields_fail_before_any_call(self, orchestrator, fake_completion, user, url, domain, data):
        with pytest.raises(ClientInputError):
            orchestrator.analyze_person(user.id, url, domain, data)
        assert fake_completion.call_count == 0

    def test_cache_is_per_user(self, orchestrator, fake_completion, user, other_user):
        fake_completion.script(strict(PERSON_ANALYSIS), strict(PERSON_ANALYSIS))
        orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)
        result = orchestrator.analyze_person(other_user.id, PERSON_URL, "initech.com", PROFILE)
        assert result["fromCache"] is False
        assert fake_completion.call_count == 2


class TestPersonaAndScore:

    @pytest.mark.parametrize("analysis, expected", [
        ({"PersonaType": {"type": "Budget Holder"}, "ICP_FitScore": {"score": "7"}}, ("budget_holder", 7)),
        ({"PersonaType": {"type": "unknown"}, "ICP_FitScore": {"score": 0}}, (None, 0)),
        ({"ICP_FitScore": {"score": 14.6}}, (None, 10)),
        ({"ICP_FitScore": {"score": "n/a"}}, (None, None)),
        ({"ICP_FitScore": {"score": float("inf")}}, (None, None)),
        ({"ICP_FitScore": {"score": float("nan")}}, (None, None)),
        ({}, (None, None)),
    ])
    def test_derivation(self, analysis, expected):
        assert _persona_and_score(analysis) == expected

    def test_out_of_range_score_from_model_is_persisted_without_score(self, orchestrator, fake_completion, store, user):
        body = strict(PERSON_ANALYSIS).replace('"score": 8', '"score": 1e400')
        assert "1e400" in body
        fake_completion.script(body)

        result = orchestrator.analyze_person(user.id, PERSON_URL, "acme.io", PROFILE)

        assert result["fromCache"] is False
        prospect = store.get_prospect_by_linkedin_url(user.id, PERSON_URL)
        assert prospect.score is None
        assert prospect.persona_match == "decision_maker"


# ---------------------------------------------------------------------------
# In-flight locks
# ---------------------------------------------------------------------------

class SlowCompletionClient(FakeCompletionClient):
    """Holds each call open long enough for a second request to pile up."""

    def __init__(self, *responses, delay: float = 0.2):
        super().__init__(list(responses))
        self.delay = delay
        self._calls_guard = threading.Lock()

    def complete(self, messages, model=None):
        with self._calls_guard:
            result = super().complete(messages, model)
        time.sleep(self.delay)
        return result


class TestConcurrentEnrichment:
    """Two requests for the same key on separate sessions share one model call."""

    @pytest.fixture
    def file_sessions(self, tmp_path):
        # A real file so each thread gets its own connection
        eng = create_engine(
            f"sqlite:///{tmp_path / 'linkify.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=eng)
        yield sessionmaker(bind=eng, autoflush=False, autocommit=False)
        eng.dispose()

    @pytest.fixture
    def seeded_user_id(self, file_sessions):
        db = file_sessions()
        try:
            store = RecordStore(db)
            u = store.create_user(
                google_id="google-sub-1",
                email="alice@acme.io",
                name="Alice",
                avatar_url=None,
                company_domain="acme.io",
            )
            store.get_or_create_account_company("acme.io", owner_user_id=u.id)
            return u.id
        finally:
            db.close()

    def _run_twice(self, file_sessions, completion, call):
        locks = LocalKeyedLock()
        barrier = threading.Barrier(2)
        results, errors = [], []

        def worker():
            db = file_sessions()
            try:
                orch = EnrichmentOrchestrator(RecordStore(db), completion, locks, get_settings())
                barrier.wait()
                results.append(call(orch))
            except Exception as e:
                errors.append(e)
            finally:
                db.close()

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=10)
        assert errors == []
        return results

    def test_same_person_is_analysed_once(self, file_sessions, seeded_user_id):
        completion = SlowCompletionClient(strict(PERSON_ANALYSIS))

        results = self._run_twice(
            file_sessions,
            completion,
            lambda orch: orch.analyze_person(seeded_user_id, PERSON_URL, "acme.io", PROFILE),
        )

        assert completion.call_count == 1
        assert sorted(r["fromCache"] for r in results) == [False, True]
        assert all(r["analysis"] == PERSON_ANALYSIS for r in results)

    def test_same_company_and_seller_are_analysed_once(self, file_sessions, seeded_user_id):
        completion = SlowCompletionClient(strict(ACCOUNT_ANALYSIS), strict(COMPANY_ANALYSIS))

        results = self._run_twice(
            file_sessions,
            completion,
            lambda orch: orch.analyze_company(seeded_user_id, COMPANY_URL, DOM, "acme.io"),
        )

        assert completion.call_count == 2
        assert sorted(r["fromCache"] for r in results) == [False, True]

        db = file_sessions()
        try:
            assert db.query(Company).count() == 1
        finally:
            db.close()


class TestLocalKeyedLock:

    def test_same_key_is_serialised(self):
        locks = LocalKeyedLock()
        active = []
        overlaps = []

        def worker():
            with locks.hold("prospect:1:url"):
                active.append(1)
                if len(active) > 1:
                    overlaps.append(True)
                time.sleep(0.01)
                active.pop()

        threads = [threading.Thread(target=worker) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert locks._locks == {}

    def test_different_keys_do_not_block(self):
        locks = LocalKeyedLock()
        with locks.hold("a"):
            entered = threading.Event()

            def other():
                with locks.hold("b"):
                    entered.set()

            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(timeout=1)
            t.join()
