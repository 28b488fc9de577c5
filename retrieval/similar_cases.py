# Copyright (c) MONAI Consortium
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#     http://www.apache.org/licenses/LICENSE-2.0
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
import asyncio
import logging
import time
from typing import List, Optional

from records.models import query_text
from records.store import RecordStore
from tool_server.errors import EmbeddingUnavailable, SubjectNotFound
from .embeddings import EmbeddingProvider
from .ranking import TOP_K, rank

logger = logging.getLogger(__name__)

NO_SIMILAR_CASES = "No similar prescriptions found."


class SimilarCaseRetriever:
    """
    Ranks every logged prescription against a new case for one patient.

    Config:
      - top_k: how many past cases to return
      - timeout: optional deadline in seconds for the whole embedding fan-out
    """

    def __init__(self, store: RecordStore, provider: EmbeddingProvider, top_k: int = TOP_K, timeout: Optional[float] = None):
        if top_k < 1:
            raise ValueError("top_k must be at least 1")
        self.store = store
        self.provider = provider
        self.top_k = top_k
        self.timeout = timeout

    async def get_similar_cases(self, subject_id: str, symptoms: str) -> str:
        subject = await self.store.find_subject_by_id(subject_id)
        if subject is None:
            raise SubjectNotFound(subject_id)

        # every record, across all patients
        records = await self.store.find_all_case_records()
        if not records:
            logger.info(f"No prescription logs to compare against for patient {subject_id}")
            return NO_SIMILAR_CASES

        texts = [query_text(subject, symptoms)] + [r.embedding_text() for r in records]
        start = time.time()
        vectors = await self._embed_all(texts)
        logger.debug(f"Embedded {len(texts)} texts in {(time.time() - start) * 1000:.0f} ms")

        query_vec, candidate_vecs = vectors[0], vectors[1:]
        top = rank(query_vec, list(zip(records, candidate_vecs)), k=self.top_k)
        for record, score in top:
            logger.debug(f"Similar case {record.id} score={score:.4f}")
        return "\n".join(record.summary_line() for record, _ in top) or NO_SIMILAR_CASES

    async def _embed_all(self, texts: List[str]) -> List[List[float]]:
        """
        Embed all texts concurrently. The first failure cancels the remaining
        calls and aborts the whole batch; so does the optional deadline.
        """
        tasks = [asyncio.ensure_future(self.provider.embed(t)) for t in texts]
        try:
            return await asyncio.wait_for(asyncio.gather(*tasks), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise EmbeddingUnavailable(f"Embedding timed out after {self.timeout} seconds") from e
        except EmbeddingUnavailable as e:
            logger.error(f"Similar-case retrieval aborted: {e}")
            raise
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
