"""
邮件服务
模板用 Jinja2 渲染（HTML 自动转义，纯文本不转义）；发送通过 aiosmtplib
"""

import logging
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional

import aiosmtplib
from bs4 import BeautifulSoup
from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape

from app.config import settings
from app.models.base import utcnow

logger = logging.getLogger(__name__)


@dataclass
class EmailTemplate:
    subject: str
    html: str
    text: str


@dataclass
class ProposalItem:
    title: str
    outline: str
    seo_keywords: list[str]


class EmailSendError(RuntimeError):
    """SMTP 发送失败"""


# ==================== 模板 ====================

_TEMPLATES = {
    "layout.html": """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{{ title }}</title>
</head>
<body style="font-family: 'PingFang SC', 'Hiragino Sans', 'Microsoft YaHei', sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <div style="background-color: {{ color }}; color: white; padding: 20px; border-radius: 8px 8px 0 0;">
      <h1 style="margin: 0; font-size: 24px;">{{ title }}</h1>
      {% if subtitle %}<p style="margin: 10px 0 0 0; opacity: 0.9;">{{ subtitle }}</p>{% endif %}
    </div>
    <div style="background-color: #f8fafc; padding: 20px; border-radius: 0 0 8px 8px;">
      {% block body %}{% endblock %}
    </div>
    <div style="margin-top: 20px; text-align: center; color: #666; font-size: 12px;">
      <p>此邮件由系统自动发送，请勿直接回复。</p>
    </div>
  </div>
</body>
</html>
""",
    "daily_proposals.html": """{% extends "layout.html" %}
{% block body %}
      <p>{{ user_name }}，您好</p>
      <p>以下是 <strong>{{ site_name }}</strong> 今日的文章提案。</p>
{% for proposal in proposals %}
      <div style="margin-bottom: 30px; padding: 20px; border: 1px solid #e0e0e0; border-radius: 8px;">
        <h3 style="color: #2563eb; margin-bottom: 10px;">提案 {{ loop.index }}: {{ proposal.title }}</h3>
        <p style="margin-bottom: 15px;">{{ proposal.outline }}</p>
        <div style="background-color: #eef2f7; padding: 10px; border-radius: 4px;"><strong>SEO 关键词：</strong>{{ proposal.seo_keywords | join(", ") }}</div>
      </div>
{% endfor %}
      <div style="margin-top: 30px; padding: 20px; background-color: #dbeafe; border-radius: 8px;">
        <p style="margin: 0;">如有满意的提案，请登录管理后台开始生成文章。</p>
{% if dashboard_url %}
        <p style="margin: 10px 0 0 0;"><a href="{{ dashboard_url }}" style="color: #2563eb;">打开管理后台</a></p>
{% endif %}
      </div>
{% endblock %}
""",
    "daily_proposals.txt": """今日文章提案 - {{ today }}

{{ user_name }}，您好

以下是 {{ site_name }} 今日的文章提案。

{% for proposal in proposals %}
提案 {{ loop.index }}: {{ proposal.title }}
{{ proposal.outline }}
SEO 关键词：{{ proposal.seo_keywords | join(", ") }}
---
{% endfor %}

如有满意的提案，请登录管理后台开始生成文章。
{% if dashboard_url %}
管理后台：{{ dashboard_url }}
{% endif %}

此邮件由系统自动发送，可在设置中关闭每日提案通知。
""",
    "welcome.html": """{% extends "layout.html" %}
{% block body %}
      <p>{{ user_name }}，感谢您注册！</p>
      <p>借助 AI，您可以高效地生成和管理经过 SEO 优化的高质量文章。</p>
      <h2>主要功能</h2>
      <ul>
{% for feature in features %}
        <li>{{ feature }}</li>
{% endfor %}
      </ul>
      <p>请登录管理后台，登记您的第一个站点。</p>
{% endblock %}
""",
    "welcome.txt": """{{ user_name }}，感谢您注册！

借助 AI，您可以高效地生成和管理经过 SEO 优化的高质量文章。

主要功能：
{% for feature in features %}
- {{ feature }}
{% endfor %}

请登录管理后台，登记您的第一个站点。
""",
    "password_reset.html": """{% extends "layout.html" %}
{% block body %}
      <p>{{ user_name }}，您好</p>
      <p>我们收到了您的密码重置请求，请点击下方链接设置新密码。</p>
      <p><a href="{{ reset_link }}" style="display: inline-block; padding: 10px 20px; background-color: #dc2626; color: white; text-decoration: none; border-radius: 4px;">重置密码</a></p>
      <p>链接 24 小时内有效。如果不是您本人操作，请忽略此邮件。</p>
{% endblock %}
""",
    "password_reset.txt": """{{ user_name }}，您好

我们收到了您的密码重置请求，请访问以下链接设置新密码：
{{ reset_link }}

链接 24 小时内有效。如果不是您本人操作，请忽略此邮件。
""",
    "token_limit.html": """{% extends "layout.html" %}
{% block body %}
      <p>{{ user_name }}，您好</p>
      <p>您本月的 token 用量已达到上限的 <strong>{{ percentage }}%</strong>。</p>
      <ul>
        <li>本月用量：{{ current_usage }}</li>
        <li>月度上限：{{ limit }}</li>
      </ul>
      <p>达到上限后将无法继续生成内容，可在设置中调整月度上限。</p>
{% endblock %}
""",
    "token_limit.txt": """{{ user_name }}，您好

您本月的 token 用量已达到上限的 {{ percentage }}%。
本月用量：{{ current_usage }}
月度上限：{{ limit }}

达到上限后将无法继续生成内容，可在设置中调整月度上限。
""",
}

_env = Environment(
    loader=DictLoader(_TEMPLATES),
    autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
    undefined=StrictUndefined,
    trim_blocks=True,
    lstrip_blocks=True,
)


def _render(name: str, subject: str, **context) -> EmailTemplate:
    """渲染同名的 .html / .txt 两个模板"""
    return EmailTemplate(
        subject=subject,
        html=_env.get_template(f"{name}.html").render(**context),
        text=_env.get_template(f"{name}.txt").render(**context),
    )


def build_daily_proposal_email(
    user_name: str,
    site_name: str,
    proposals: list[ProposalItem],
    dashboard_url: Optional[str] = None,
) -> EmailTemplate:
    """每日大纲提案邮件"""
    today = utcnow().date().isoformat()
    return _render(
        "daily_proposals",
        f"【{site_name}】今日文章提案 - {today}",
        title="今日文章提案",
        color="#2563eb",
        subtitle=today,
        today=today,
        user_name=user_name,
        site_name=site_name,
        proposals=proposals,
        dashboard_url=dashboard_url,
    )


def build_welcome_email(user_name: str) -> EmailTemplate:
    return _render(
        "welcome",
        f"欢迎使用 {settings.APP_NAME}",
        title="欢迎！",
        color="#10b981",
        subtitle="",
        user_name=user_name,
        features=[
            "根据站点信息自动生成内容方针",
            "结合 SEO 关键词提出文章大纲",
            "多语言文章正文生成",
            "CSV 格式导出文章",
            "每日文章提案邮件",
        ],
    )


def build_password_reset_email(user_name: str, reset_link: str) -> EmailTemplate:
    return _render(
        "password_reset",
        "密码重置通知",
        title="密码重置",
        color="#dc2626",
        subtitle="",
        user_name=user_name,
        reset_link=reset_link,
    )


def build_token_limit_warning_email(
    user_name: str, current_usage: int, limit: int
) -> EmailTemplate:
    percentage = round(current_usage / limit * 100) if limit else 100
    return _render(
        "token_limit",
        f"Token 用量提醒：本月已使用 {percentage}%",
        title="Token 用量提醒",
        color="#f59e0b",
        subtitle="",
        user_name=user_name,
        percentage=percentage,
        current_usage=f"{current_usage:,}",
        limit=f"{limit:,}",
    )


def html_to_text(content: str) -> str:
    """HTML 转纯文本（未提供纯文本版本时的兜底）"""
    soup = BeautifulSoup(content, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    lines = (" ".join(line.split()) for line in soup.get_text("\n").splitlines())
    return "\n".join(line for line in lines if line)


# ==================== 发送 ====================


class EmailService:
    """SMTP 邮件发送"""

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender: Optional[str] = None,
    ):
        self.host = host if host is not None else settings.EMAIL_SERVER_HOST
        self.port = port if port is not None else settings.EMAIL_SERVER_PORT
        self.username = username if username is not None else settings.EMAIL_SERVER_USER
        self.password = password if password is not None else settings.EMAIL_SERVER_PASSWORD
        self.sender = sender or settings.EMAIL_FROM

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def _build_message(
        self, to: str, subject: str, html_body: str, text: Optional[str]
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text or html_to_text(html_body))
        message.add_alternative(html_body, subtype="html")
        return message

    async def send_email(
        self, to: str, subject: str, html_body: str, text: Optional[str] = None
    ) -> None:
        """
        发送邮件
        465 端口走隐式 TLS，其余端口 STARTTLS

        Raises:
            EmailSendError: SMTP 未配置或发送失败
        """
        if not self.is_configured:
            raise EmailSendError("邮件服务未配置 (EMAIL_SERVER_HOST)")

        message = self._build_message(to, subject, html_body, text)
        implicit_tls = self.port == 465
        try:
            await aiosmtplib.send(
                message,
                hostname=self.host,
                port=self.port,
                username=self.username or None,
                password=(self.password or "") if self.username else None,
                use_tls=implicit_tls,
                start_tls=not implicit_tls,
                timeout=30,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"邮件发送失败: to={to}, subject={subject}, error={e}")
            raise EmailSendError("邮件发送失败") from e
        logger.info(f"邮件已发送: to={to}, subject={subject}")

    async def _send_template(self, to: str, template: EmailTemplate) -> None:
        await self.send_email(to, template.subject, template.html, template.text)

    async def send_daily_proposals(
        self,
        to: str,
        user_name: str,
        site_name: str,
        proposals: list[ProposalItem],
        dashboard_url: Optional[str] = None,
    ) -> None:
        await self._send_template(
            to, build_daily_proposal_email(user_name, site_name, proposals, dashboard_url)
        )

    async def send_welcome_email(self, to: str, user_name: str) -> None:
        await self._send_template(to, build_welcome_email(user_name))

    async def send_password_reset_email(self, to: str, user_name: str, reset_link: str) -> None:
        await self._send_template(to, build_password_reset_email(user_name, reset_link))

    async def send_token_limit_warning(
        self, to: str, user_name: str, current_usage: int, limit: int
    ) -> None:
        await self._send_template(
            to, build_token_limit_warning_email(user_name, current_usage, limit)
        )
