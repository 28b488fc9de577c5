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
import math
from typing import List, Sequence, Tuple, TypeVar

import numpy as np

TOP_K = 2

T = TypeVar("T")


def cosine(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors. Returns NaN when either vector has zero
    magnitude; raises ValueError when the lengths differ.
    """
    va = np.asarray(a, dtype="float64")
    vb = np.asarray(b, dtype="float64")
    if va.shape != vb.shape:
        raise ValueError(f"Vector length mismatch: {va.shape[0]} vs {vb.shape[0]}")
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return float("nan")
    return float(np.dot(va, vb) / denom)


def rank(query: Sequence[float], candidates: Sequence[Tuple[T, Sequence[float]]], k: int = TOP_K) -> List[Tuple[T, float]]:
    """
    Score every candidate against ``query`` and return the top ``k`` as
    (item, score) pairs, best first. NaN scores sort after every real score;
    equal scores keep their input order.
    """
    scored = [(item, cosine(query, vec)) for item, vec in candidates]
    # sorted() is stable, so ties stay in input order
    scored = sorted(scored, key=lambda pair: (math.isnan(pair[1]), -pair[1] if not math.isnan(pair[1]) else 0.0))
    return scored[:k]
