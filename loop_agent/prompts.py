"""
loop_agent.prompts

Prompt templates and the placeholder renderer.

Templates use literal ``{{name}}`` placeholders. Only the names in
``PLACEHOLDERS`` are substituted; anything else in a template is left as-is.
"""
from __future__ import annotations

import re
from pathlib import Path
from typing import Mapping

PLACEHOLDERS = frozenset({"FAIL", "validate_script", "files", "iteration", "attempt"})

OUTDATED_MARKER = "[OUTDATED]"

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")

INIT_PROMPT = "/init"

CREATE_TASK_PROMPT = "基于项目现状在tasks目录中创建一个新任务，定义一个适当的新特性"

CLEANUP_TEMPLATE = """\
当前仓库存在未提交的改动（第 {{iteration}} 轮迭代，第 {{attempt}} 次清理）。
下面是 `git status --porcelain=v1` 的输出：
{{files}}

请逐个检查这些文件，并使工作区恢复干净：
- 属于本轮迭代有效产出的文件（代码、测试、文档、任务文件、SPEC.md 等）：使用 git 提交，提交信息简要说明改动内容。
- 临时文件、构建产物、日志、缓存等不应入库的文件：将其加入 .gitignore 或删除。
- 不要修改任何文件的内容，只做提交、忽略或删除。

完成后 `git status --porcelain=v1` 必须没有任何输出。不要输出额外说明。
"""

TASK_FILTER_TEMPLATE = """\
你是“需求文档维护器”。下面是需求文档@{task_path}。你必须结合项目当前内容判断需求是否“完全过时”。

【过时(OUTDATED)定义】
- 当且仅当：需求所描述的功能/行为已经在项目中“完全实现”。
- 注意：即使仅缺少测试用例，也仍然算“完全实现”，应判定为过时。

【允许的标记集合（硬约束）】
- 你只允许在文档中新增以下标记之一：`[OUTDATED]`。
- 严禁新增或输出任何其他状态标记，尤其严禁出现：`[COMPLETED]`、`COMPLETED`、`DONE`、`FINISHED`。（只要出现任意一个都算违反要求）

【决策规则（硬约束）】
1) 若你能在项目中找到充分证据表明“需求全部要点都已实现”（允许缺测试）：
   - 仅在文档中增加标记`[OUTDATED]`（建议加在第一行或标题行末尾），其余内容不要做结构性改写。
2) 否则（包括你无法确定是否完全实现）：
   - 不得添加`[OUTDATED]`。
   - 你必须更新需求文档内容，使其与项目当前实际一致。

【输出与修改范围（硬约束）】
- 你只允许修改这个文档本身，不得修改项目其他文件。
- 你的输出必须是“修改后的文档全文”，不要附加解释、不要输出分析过程、不要输出额外段落。

【需求文档内容】
"""

SPEC_TEMPLATE = """\
下面是我的需求。请在项目根目录生成一份 "SPEC.md"，并严格遵守以下要求：

【必须包含的模块（使用这些标题）】
1) 不可修改条款
2) 可验证验收标准
3) 后续任务

【关键约束（非常重要）】
- 你只允许在本次 "SPEC.md" 中定义“原子化的第一步工作”（Atomic Step 1）：
  - 该步骤必须足够小，能够在一次迭代内实现并通过 @{{validate_script}} 验证。
  - 不要把所有功能一次性塞进第一步。
  - 在定义任务时要考虑当前的实现，不要将已经实现的内容定义为任务。
- 其余未包含在第一步中的工作，必须拆分为 2~8 条“后续任务”，写入 "后续任务" 模块：
  - 每条后续任务必须是独立可实现、可验证的小步。
  - 每条后续任务必须包含：任务标题 + 简要描述 + 可验证验收标准（至少 1 条）+ 最小测试计划（@{{validate_script}} 如何先失败再通过）。
- "可验证验收标准" 只针对“第一步工作”，不能覆盖后续任务。
- 不要实现代码，不要修改 @{{validate_script}}；只生成/更新 "SPEC.md"。

【输出要求】
- 若 "SPEC.md" 已存在：仅在其缺失上述模块或未满足“原子化第一步 + 后续任务”要求时补全；否则不要重写。
- 生成后停止，不要输出额外说明。

下面是需求正文：
"""

RED_TEMPLATE = """\
下面是我的规范，请基于`不可修改条款`和`可验证验收标准`改动代码测试验证部分和测试脚本 @{{validate_script}}
确保脚本因为未实现功能失败
除了测试验证代码和@{{validate_script}}禁止修改其他内容
忽略`后续任务`部分内容，不要将其添加到测试中
"""

GREEN_TEMPLATE = """
目前按照@SPEC.md 的定义，添加了检测，并@{{validate_script}}会因为未实现功能失败，请实现对应功能，相关日志如下：
{{FAIL}}
"""

EVOLVE_TEMPLATE = """\
下面是当前需求与上下文。请参考最近几次提交的实现情况，并在 "./tasks/" 文件夹下创建下一步任务（任务队列），满足以下规则：

【目标（两条路径，择一或组合，但数量受控）】
A) 优先路径：如果 @SPEC.md 中存在 "后续任务" 模块，落地为新的任务文件写入 "./tasks/"，过滤"tasks"中已有的任务。
B) 可选路径：如果 "后续任务" 为空、过大、过时，或无法反映当前实现状态，你可以额外定义 1 个“新的需求”（新功能/新能力/质量提升方向），并写入 "./tasks/"。

【严格要求】
1) 本次最多创建 1～2 个“新的需求”任务文件（避免任务爆炸）,对"后续任务"数量不做限制。
2) 每个新任务必须是“原子化的小步”，能够在一次迭代内完成并通过 @{{validate_script}} 验证。
3) 每个任务文件必须包含以下结构（使用这些标题）：
   - 标题
   - 背景/动机（为什么需要做）
   - 可验证验收标准（至少 2 条，必须可自动检查）
   - 最小测试计划（@{{validate_script}} 如何先失败再通过）
4) 命名规范：任务文件名必须使用递增数字前缀，例如：
   - "002_<short_slug>.md"
   - "003_<short_slug>.md"
5) 不要修改实现代码，不要修改 @{{validate_script}}；只创建任务文件
6) 新任务文件不要和已有的"tasks"中的任务重复

【完成条件】
- "./tasks/" 下出现新的任务文件（1～10 个）。
- 新任务与当前实现状态一致，不重复已完成内容，且可被下一轮直接执行。

下面是需求正文（供参考）：
"""


def render(template: str, bindings: Mapping[str, object]) -> str:
    """Replace each bound ``{{name}}`` with ``str(value)``.

    Substitution is a single literal pass: values are never re-scanned, and
    placeholders without a binding stay in the output untouched.
    """
    unknown = set(bindings) - PLACEHOLDERS
    if unknown:
        raise ValueError(f"unknown prompt placeholders: {sorted(unknown)}")

    def _substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in bindings:
            return str(bindings[name])
        return match.group(0)

    return _PLACEHOLDER_RE.sub(_substitute, template)


def task_filter_prompt(task_path: str, task_text: str) -> str:
    return TASK_FILTER_TEMPLATE.format(task_path=task_path) + task_text


def is_outdated(task_text: str) -> bool:
    # Plain containment: a task that merely quotes the marker counts as outdated.
    return OUTDATED_MARKER in task_text


def persist_prompt(directory: Path, filename: str, prompt: str) -> Path:
    path = directory / filename
    path.write_text(prompt, encoding="utf-8")
    return path
