"""
Display-language packs for bot replies and push notifications.

Two packs are shipped: Chinese ("zh", the process default) and English
("en"). Unknown language codes fall back to the Chinese pack.
"""

from pydantic import BaseModel

SUPPORTED_LANGS = ("zh", "en")
FALLBACK_LANG = "zh"

LANG_DISPLAY_NAMES = {"zh": "中文", "en": "English"}


class MessagePack(BaseModel):
    """All user-visible strings for one language."""

    model_config = {"frozen": True}

    lang: str

    # access / identity
    unable_get_user_info: str
    no_permission: str

    # /start
    welcome: str
    current_prefix: str
    current_domains: str
    available_commands: str

    # /new
    create_success: str
    create_failed: str
    password: str
    credential: str

    # /bind, /bindtopic
    please_input_credential: str
    bind_success: str
    bind_failed: str
    use_in_topic: str
    bind_topic_usage: str
    topic_id: str
    topic_push_enabled: str

    # /unbind, /delete
    please_input_address: str
    unbind_success: str
    unbind_failed: str
    delete_success: str
    delete_failed: str

    # /address, /cleaninvalidaddress
    address: str
    address_list: str
    get_address_failed: str
    clean_success: str
    current_address_list: str
    clean_failed: str

    # /lang
    lang_feature_disabled: str
    lang_set_success: str
    current_lang: str
    select_lang: str

    # /mails and push rendering
    not_bound_address: str
    invalid_address: str
    no_more_mails: str
    no_mail: str
    get_mail_failed: str
    prev_btn: str
    next_btn: str
    view_mail_btn: str
    msg_too_long: str
    no_sender: str
    parse_failed_view_in_app: str
    parse_mail_failed: str


ZH = MessagePack(
    lang="zh",
    unable_get_user_info="无法获取用户信息",
    no_permission="您没有权限使用此机器人",
    welcome="欢迎使用临时邮箱机器人",
    current_prefix="当前前缀:",
    current_domains="当前可用域名:",
    available_commands="可用命令:",
    create_success="创建成功",
    create_failed="创建失败:",
    password="密码:",
    credential="凭证:",
    please_input_credential="请输入邮箱地址凭证",
    bind_success="绑定成功",
    bind_failed="绑定失败:",
    use_in_topic="⚠️ 请在超级群组的话题中使用此命令!",
    bind_topic_usage="使用方法: /bindtopic <邮箱凭证>",
    topic_id="📍 话题 ID:",
    topic_push_enabled="✅ 新邮件将推送到此话题",
    please_input_address="请输入邮箱地址",
    unbind_success="解绑成功",
    unbind_failed="解绑失败:",
    delete_success="删除成功:",
    delete_failed="删除失败:",
    address="地址:",
    address_list="地址列表:",
    get_address_failed="获取地址列表失败:",
    clean_success="清理成功",
    current_address_list="当前地址列表:",
    clean_failed="清理失败:",
    lang_feature_disabled="语言设置功能未开启",
    lang_set_success="语言已设置为",
    current_lang="当前语言:",
    select_lang="请选择语言:",
    not_bound_address="未绑定此地址:",
    invalid_address="无效的地址",
    no_more_mails="没有更多邮件了",
    no_mail="暂无邮件",
    get_mail_failed="获取邮件失败:",
    prev_btn="上一封",
    next_btn="下一封",
    view_mail_btn="查看邮件",
    msg_too_long="邮件内容过长, 请在应用中查看",
    no_sender="无发件人",
    parse_failed_view_in_app="解析邮件内容失败, 请在应用中查看",
    parse_mail_failed="解析邮件失败:",
)

EN = MessagePack(
    lang="en",
    unable_get_user_info="Unable to get user information",
    no_permission="You do not have permission to use this bot",
    welcome="Welcome to the temporary mail bot",
    current_prefix="Current prefix:",
    current_domains="Available domains:",
    available_commands="Available commands:",
    create_success="Created successfully",
    create_failed="Create failed:",
    password="Password:",
    credential="Credential:",
    please_input_credential="Please enter the address credential",
    bind_success="Bound successfully",
    bind_failed="Bind failed:",
    use_in_topic="⚠️ Please use this command inside a supergroup topic!",
    bind_topic_usage="Usage: /bindtopic <credential>",
    topic_id="📍 Topic ID:",
    topic_push_enabled="✅ New mail will be pushed to this topic",
    please_input_address="Please enter the address",
    unbind_success="Unbound successfully",
    unbind_failed="Unbind failed:",
    delete_success="Deleted:",
    delete_failed="Delete failed:",
    address="Address:",
    address_list="Address list:",
    get_address_failed="Failed to get address list:",
    clean_success="Cleaned successfully",
    current_address_list="Current address list:",
    clean_failed="Clean failed:",
    lang_feature_disabled="Language setting is not enabled",
    lang_set_success="Language set to",
    current_lang="Current language:",
    select_lang="Select a language:",
    not_bound_address="Address not bound:",
    invalid_address="Invalid address",
    no_more_mails="No more mails",
    no_mail="No mail",
    get_mail_failed="Failed to get mail:",
    prev_btn="Prev",
    next_btn="Next",
    view_mail_btn="View mail",
    msg_too_long="Message too long, please view it in the app",
    no_sender="No sender",
    parse_failed_view_in_app="Failed to parse mail content, please view it in the app",
    parse_mail_failed="Failed to parse mail:",
)

_PACKS = {"zh": ZH, "en": EN}


def get_messages(lang: str | None) -> MessagePack:
    """Return the pack for ``lang``, falling back to the Chinese pack."""
    return _PACKS.get((lang or "").strip().lower(), _PACKS[FALLBACK_LANG])
