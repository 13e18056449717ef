"""Reed.co.uk jobseeker API adapter."""

from typing import Any, Dict, List

from ..errors import BudgetExhaustedError
from .common import ProviderClient, is_recruitment_agency

REED_API_URL = "https://www.reed.co.uk/api/1.0/search"
PAGE_SIZE = 100


def to_raw_posting(job: Dict[str, Any]) -> Dict[str, Any]:
    """Map one Reed result onto the raw posting shape."""
    return {
        "title": job.get("jobTitle"),
        "company_name": job.get("employerName"),
        "location": job.get("locationName") or "",
        "posted_date": job.get("date"),
        "salary_min": job.get("minimumSalary"),
        "salary_max": job.get("maximumSalary"),
        "description": job.get("jobDescription"),
        "source": "reed",
        "source_id": str(job["jobId"]) if job.get("jobId") is not None else None,
        "source_url": job.get("jobUrl"),
    }


class ReedProvider(ProviderClient):
    name = "reed"

    def __init__(self, api_key: str, **kwargs):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.budget_exhausted = False
        self.agency_filtered = 0

    def search(
        self,
        keywords: str,
        location: str,
        posted_within: int = 7,
        max_results: int = 200,
        direct_employer_only: bool = True,
    ) -> List[Dict[str, Any]]:
        """
        Search Reed and return raw posting dicts from direct employers.

        Pages until a short page, max_results, or the daily budget runs out;
        whatever was fetched before the budget ran out is still returned.
        """
        postings: List[Dict[str, Any]] = []
        skip = 0
        while skip < max_results:
            params = {
                "keywords": keywords,
                "locationName": location,
                "postedWithin": posted_within,
                "resultsToTake": min(PAGE_SIZE, max_results - skip),
                "resultsToSkip": skip,
            }
            if direct_employer_only:
                params["postedByDirectEmployer"] = "true"

            try:
                data = self.get_json(REED_API_URL, params=params, auth=(self.api_key, ""))
            except BudgetExhaustedError:
                self.budget_exhausted = True
                self.logger.warning("Reed budget exhausted mid-search", keywords=keywords, location=location)
                break
            if not data:
                break

            results = data.get("results") or []
            postings.extend(self._keep_direct(results))
            if len(results) < params["resultsToTake"]:
                break
            skip += len(results)

        self.logger.info("Reed search complete", keywords=keywords, location=location, postings=len(postings))
        return postings

    def _keep_direct(self, results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        kept = []
        for job in results:
            if is_recruitment_agency(job.get("employerName") or "", job.get("jobDescription")):
                self.agency_filtered += 1
                self.logger.record_skip("recruitment_agency")
                continue
            kept.append(to_raw_posting(job))
        return kept
