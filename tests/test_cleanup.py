"""Tests for the maintenance sweep."""

from painsignal import repository as repo
from painsignal.cleanup import MaintenanceSweep, SweepStats
from painsignal.database import JobPosting, PainSignal, session_scope


class TestMarkStalePostings:
    """Postings unseen for the inactivity window are flipped inactive."""

    def test_unseen_posting_deactivated(self, pipeline, make_posting, day):
        """Postings unseen for more than 21 days are marked inactive."""
        result = pipeline.ingest_observation(make_posting(), now=day(1))
        ids = MaintenanceSweep(pipeline).mark_stale_postings(now=day(23))
        assert ids == [result.posting_id]

        with session_scope(pipeline.factory) as session:
            posting = session.get(JobPosting, result.posting_id)
            assert not posting.is_active
            assert posting.updated_at == day(23)

    def test_recently_seen_posting_kept(self, pipeline, make_posting, day):
        """Exactly twenty-one days since last seen is not yet inactive."""
        pipeline.ingest_observation(make_posting(), now=day(1))
        assert MaintenanceSweep(pipeline).mark_stale_postings(now=day(22)) == []

    def test_empty_database(self, pipeline, day):
        """Maintenance on an empty database reports zero counts."""
        stats = MaintenanceSweep(pipeline).run_maintenance(now=day(1))
        assert stats == SweepStats()


class TestSignalResolution:
    def test_signals_of_inactive_posting_resolved(self, pipeline, make_posting, day):
        """Deactivation resolves every signal on the posting and zeroes the score."""
        result = pipeline.ingest_observation(
            make_posting(description="Referral bonus of £500"), now=day(95)
        )
        assert result.score == 50

        stats = MaintenanceSweep(pipeline).run_maintenance(now=day(117))
        assert stats.postings_deactivated == 1
        assert stats.signals_resolved == 2
        assert stats.companies_rescored == 1

        with session_scope(pipeline.factory) as session:
            assert repo.active_signals_for_company(session, result.company_id) == []
            assert all(s.resolved_at == day(117) for s in session.query(PainSignal))
            assert repo.get_company(session, result.company_id).hiring_pain_score == 0

    def test_other_company_untouched(self, pipeline, make_posting, day):
        """Resolving one company's signals leaves other companies alone."""
        closing = pipeline.ingest_observation(make_posting(), now=day(95))
        live = pipeline.ingest_observation(
            make_posting(company_name="Harbour Dental Practice", title="Dental Nurse"), now=day(110)
        )
        MaintenanceSweep(pipeline).run_maintenance(now=day(117))

        with session_scope(pipeline.factory) as session:
            assert repo.get_company(session, closing.company_id).hiring_pain_score == 0
            assert repo.get_company(session, live.company_id).hiring_pain_score == 35


class TestRefreshPostingSignals:
    """Active postings are re-classified against their real refresh gap."""

    def test_hard_to_fill_becomes_stale(self, pipeline, make_posting, day):
        """An active posting not refreshed for over 14 days moves from hard-to-fill to stale."""
        result = pipeline.ingest_observation(make_posting(), now=day(62))
        stats = SweepStats()
        changed = MaintenanceSweep(pipeline).refresh_posting_signals(now=day(78), stats=stats)

        assert changed == 2
        assert stats.signals_emitted == 1
        assert stats.signals_resolved == 1
        with session_scope(pipeline.factory) as session:
            signal = repo.active_signals_for_company(session, result.company_id)[0]
            assert signal.signal_type == "stale_job_60"
            assert signal.days_since_refresh == 16
            assert signal.signal_title == "Site Manager - Possibly stale (78 days)"
            assert repo.get_company(session, result.company_id).hiring_pain_score == 15

    def test_fresh_posting_ages_into_next_bucket(self, pipeline, make_posting, day):
        """A recently refreshed posting crosses into its first day bucket."""
        result = pipeline.ingest_observation(make_posting(), now=day(25))
        MaintenanceSweep(pipeline).refresh_posting_signals(now=day(31))
        with session_scope(pipeline.factory) as session:
            types = [s.signal_type for s in repo.active_signals_for_company(session, result.company_id)]
        assert types == ["hard_to_fill_30"]

    def test_unchanged_classification_is_noop(self, pipeline, make_posting, day):
        """No signal changes when the classification has not moved."""
        pipeline.ingest_observation(make_posting(), now=day(31))
        assert MaintenanceSweep(pipeline).refresh_posting_signals(now=day(33)) == 0
