"""Report templates: column layouts, extraction hints and default rosters.

Each template describes one department's daily report.  The column order is
the contract with the row projector and with whoever pastes the exported TSV
into a spreadsheet.
"""

import logging

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

CUSTOM_TEMPLATE_ID = "custom"


class TemplateConfig(BaseModel):
    """One report template."""

    label: str
    hint: str
    columns: list[str]
    default_staff: list[str] = Field(default_factory=list)


TEMPLATES: dict[str, TemplateConfig] = {
    "public": TemplateConfig(
        label="公域流量",
        hint="提取账号状态、剪辑发布及客资。日期统一为 YYYY/MM/DD。",
        columns=[
            "日期",
            "运营人",
            "IP",
            "今日此IP封号数",
            "今日此IP可用账号数",
            "今日此IP剪辑数",
            "今日审核数",
            "今日此IP视频发布数",
            "今日总文案数",
            "今日客资数",
        ],
        default_staff=["仲金", "焮怡", "张星", "宇鑫", "正宏", "溯溯", "柯廷"],
    ),
    "ip": TemplateConfig(
        label="IP 部门",
        hint="重点提取各 IP 账号的产出数据。格式：日期、具体IP名称、产出数量、运营负责人。日期格式 YYYY/MM/DD。",
        columns=["日期", "IP", "数量", "运营"],
        default_staff=["花花", "小冉", "羊羊", "发发", "飞哥", "老郭"],
    ),
    "private": TemplateConfig(
        label="私域运营",
        hint="根据客资转化路径提取。'今日总客资'列将尝试从文本汇总提取。",
        columns=[
            "日期",
            "私域",
            "今日新分配客资",
            "今日新微信客资",
            "今日总客资",
            "以往未接通客资",
            "今日未接通客资",
            "今日无效客资",
            "今日加微信客资",
            "今日签约客户",
            "客户今日上门/已操作客户",
            "今日放款客户",
        ],
        default_staff=["小凌", "婷婷", "燕燕", "小雪", "刘雅", "媛媛", "姜姜"],
    ),
    CUSTOM_TEMPLATE_ID: TemplateConfig(
        label="✨ 自定义",
        hint="手动指定列名，AI 将根据你的定义灵活提取数据。",
        columns=[],
    ),
}


def get_template(template_id: str, templates: dict[str, TemplateConfig] | None = None) -> TemplateConfig:
    """Look up a template by id, raising ValueError for unknown ids."""
    registry = TEMPLATES if templates is None else templates
    if template_id not in registry:
        raise ValueError(f"Unknown template: {template_id!r} (available: {', '.join(registry)})")
    return registry[template_id]


def resolve_request(
    template_id: str | None,
    columns: list[str] | None = None,
    roster: list[str] | None = None,
    templates: dict[str, TemplateConfig] | None = None,
) -> tuple[list[str], str, list[str]]:
    """Return the effective (columns, hint, roster) for a transform request.

    Explicit ``columns`` / ``roster`` override the template's own.  An empty
    roster list disables reconciliation; ``None`` falls back to the template's
    default staff.  Without a template id the custom template supplies the hint.
    """
    template = get_template(template_id or CUSTOM_TEMPLATE_ID, templates)
    effective_columns = list(template.columns) if columns is None else list(columns)
    effective_roster = list(template.default_staff) if roster is None else list(roster)
    logger.debug(
        "Resolved template %s: %d columns, %d roster names",
        template_id or CUSTOM_TEMPLATE_ID,
        len(effective_columns),
        len(effective_roster),
    )
    return effective_columns, template.hint, effective_roster
