# Copyright 2026 Firefly Software Solutions Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""Tests for session identifier helpers."""

from flysession.session.ids import generate_session_id, is_valid_session_id


class TestSessionIds:
    def test_generated_ids_are_valid_and_unique(self):
        ids = {generate_session_id() for _ in range(100)}
        assert len(ids) == 100
        assert all(is_valid_session_id(sid) for sid in ids)

    def test_generated_id_length(self):
        assert len(generate_session_id()) == 43

    def test_rejects_malformed(self):
        for bad in (None, 42, "", "short", "has space in it aaaaaaaaaaaa", "a" * 129, "../../etc/passwd/xxxxxxxx"):
            assert is_valid_session_id(bad) is False

    def test_accepts_foreign_but_well_formed(self):
        assert is_valid_session_id("0123456789abcdef0123456789abcdef") is True
