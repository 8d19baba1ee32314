# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
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

"""
Converters for generating the shell script a scheduled task invokes.
"""
import shlex
from jinja2 import Environment
from ..MODELS.scheduled_task import ScheduledTask
from ..errors import OutputError
from ..UTILS.fs import atomic_write

CRON_SCRIPT_TEMPLATE = """#!/bin/bash
# Generated by valstack for {{ identity }}; rewritten on every provisioning run.
set -e
cd {{ working_dir | quote }}
{% for k, v in environment.items() %}
export {{ k }}={{ v | quote }}
{% endfor %}
exec {{ command | map('quote') | join(' ') }}
"""

_env = Environment(trim_blocks=True, lstrip_blocks=True, keep_trailing_newline=True, autoescape=False)
_env.filters["quote"] = shlex.quote


class CronScriptConverter:
    """
    Renders a ScheduledTask into the executable script its cron line points at.

    Every argument is shell-quoted, so values captured from the inputs cannot
    change the structure of the command.
    """

    def __init__(self, task: ScheduledTask):
        self.task = task
        self.template = _env.from_string(CRON_SCRIPT_TEMPLATE)

    def render(self) -> str:
        return self.template.render(
            identity=self.task.identity,
            working_dir=self.task.working_dir,
            environment=self.task.environment,
            command=self.task.command,
        )

    def convert(self) -> str:
        """
        Writes the script, readable and executable by its owner only.

        :return: The path to the script.
        :raises OutputError: If the script cannot be written.
        """
        try:
            atomic_write(self.task.script_path, self.render(), mode=0o700)
        except OSError as e:
            raise OutputError(f"cannot write {self.task.script_path}: {e}") from e
        return self.task.script_path
