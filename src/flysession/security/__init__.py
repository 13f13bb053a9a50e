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
"""flysession security — per-request session security pipeline."""

from flysession.security.binding import binding_signal_from_headers, compute_binding_hash
from flysession.security.checks import (
    IdentityBindingCheck,
    IdleTimeoutCheck,
    Proceed,
    Restart,
    RestartReason,
    SecurityCheck,
    SessionInitializationCheck,
)
from flysession.security.metadata import SecurityMetadata
from flysession.security.pipeline import Continue, PipelineResult, RestartedSession, SecurityPipeline

__all__ = [
    "Continue",
    "IdentityBindingCheck",
    "IdleTimeoutCheck",
    "PipelineResult",
    "Proceed",
    "Restart",
    "RestartReason",
    "RestartedSession",
    "SecurityCheck",
    "SecurityMetadata",
    "SecurityPipeline",
    "SessionInitializationCheck",
    "binding_signal_from_headers",
    "compute_binding_hash",
]
