"""
I18n - Message keys and the English/Chinese message tables
"""

import os
from enum import Enum
from typing import Dict, Optional


class MessageKey(Enum):
    """Every user-facing message the recorder prints."""
    COMMAND_COMPLETED = "command_completed"
    EXECUTION_TIME = "execution_time"
    STDOUT = "stdout"
    STDERR = "stderr"
    RESULT_SAVED = "result_saved"
    ASSIGNED_SHORT_CODE = "assigned_short_code"
    HINT_DIFF_WITH_CODE = "hint_diff_with_code"
    DIFF_CODE_NOT_FOUND = "diff_code_not_found"
    NEED_AT_LEAST_TWO = "need_at_least_two"

    # Selection
    SELECT_EXECUTIONS = "select_executions"
    SELECT_COMMAND = "select_command"
    SELECT_CLEAN_COMMAND = "select_clean_command"
    SELECT_CLEAN_FILE = "select_clean_file"
    INPUT_NUMBERS = "input_numbers"
    INPUT_NUMBER = "input_number"
    INVALID_INPUT = "invalid_input"
    COUNT_LABEL = "count_label"
    LATEST_LABEL = "latest_label"
    SHORT_CODE_LABEL = "short_code_label"
    TIME_LABEL = "time_label"
    STATUS_SELECT_FIRST = "status_select_first"
    STATUS_SELECT_SECOND = "status_select_second"
    STATUS_FILTER = "status_filter"
    NAVIGATE_HINT = "navigate_hint"
    NO_MATCHES = "no_matches"
    SELECTION_COMPLETE = "selection_complete"
    MARK_HINT = "mark_hint"
    PREVIEW_STDOUT_HEADER = "preview_stdout_header"
    PREVIEW_STDERR_HEADER = "preview_stderr_header"
    PREVIEW_TOGGLE_SHORT = "preview_toggle_short"
    PREVIEW_PATH_LABEL = "preview_path_label"
    PREVIEW_PATH_MISSING = "preview_path_missing"
    PREVIEW_EMPTY = "preview_empty"
    PREVIEW_TRUNCATED_HINT = "preview_truncated_hint"
    PREVIEW_NO_SELECTION = "preview_no_selection"
    PREVIEW_SINGLE_COLUMN_NOTICE = "preview_single_column_notice"
    WARNING_INTERACTIVE_FAILED = "warning_interactive_failed"
    FEW_RECORDS_FALLBACK = "few_records_fallback"
    USING_FILTERED_RECORDS = "using_filtered_records"
    MONTH_JAN = "month_jan"
    MONTH_FEB = "month_feb"
    MONTH_MAR = "month_mar"
    MONTH_APR = "month_apr"
    MONTH_MAY = "month_may"
    MONTH_JUN = "month_jun"
    MONTH_JUL = "month_jul"
    MONTH_AUG = "month_aug"
    MONTH_SEP = "month_sep"
    MONTH_OCT = "month_oct"
    MONTH_NOV = "month_nov"
    MONTH_DEC = "month_dec"

    # Diff report
    DIFF_COMMAND = "diff_command"
    DIFF_EARLIER_LABEL = "diff_earlier_label"
    DIFF_LATER_LABEL = "diff_later_label"
    DIFF_EXIT_CODE = "diff_exit_code"
    DIFF_EXECUTION_TIME = "diff_execution_time"
    STDOUT_DIFF = "stdout_diff"
    STDERR_DIFF = "stderr_diff"
    OUTPUT_IDENTICAL = "output_identical"

    # Cleaning
    NO_RECORDS = "no_records"
    NO_RELATED_FILES = "no_related_files"
    CLEAN_RECORD = "clean_record"
    CLEANED_RECORDS = "cleaned_records"
    CLEANED_ALL = "cleaned_all"
    CONFIRM_DELETE_PROMPT = "confirm_delete_prompt"
    CONFIRM_CLEAN_ALL_TITLE = "confirm_clean_all_title"
    CONFIRM_CLEAN_ALL_ABORTED = "confirm_clean_all_aborted"
    CLEAN_ALL_SUMMARY = "clean_all_summary"
    DELETE_NOTHING = "delete_nothing"
    DRY_RUN_TOTAL = "dry_run_total"
    DELETE_SUMMARY_QUERY = "delete_summary_query"
    DELETE_SUMMARY_FILE = "delete_summary_file"

    # Configuration
    CONFIG_CREATED = "config_created"
    CONFIG_EXISTS = "config_exists"

    # Errors
    ERROR_CREATE_DT_DIR = "error_create_dt_dir"
    ERROR_CREATE_RECORDS_DIR = "error_create_records_dir"
    ERROR_CREATE_RECORD_DIR = "error_create_record_dir"
    ERROR_SAVE_METADATA = "error_save_metadata"
    ERROR_SAVE_STDOUT = "error_save_stdout"
    ERROR_SAVE_STDERR = "error_save_stderr"
    ERROR_READ_STDOUT = "error_read_stdout"
    ERROR_READ_STDERR = "error_read_stderr"
    ERROR_READ_BUCKET = "error_read_bucket"
    ERROR_UPDATE_INDEX = "error_update_index"
    ERROR_SAVE_ARCHIVE = "error_save_archive"
    ERROR_REBUILD_INDEX = "error_rebuild_index"
    ERROR_DELETE_RECORD = "error_delete_record"
    ERROR_EXECUTE_COMMAND = "error_execute_command"
    ERROR_CAPTURE_OUTPUT = "error_capture_output"


MONTH_KEYS = (
    MessageKey.MONTH_JAN, MessageKey.MONTH_FEB, MessageKey.MONTH_MAR,
    MessageKey.MONTH_APR, MessageKey.MONTH_MAY, MessageKey.MONTH_JUN,
    MessageKey.MONTH_JUL, MessageKey.MONTH_AUG, MessageKey.MONTH_SEP,
    MessageKey.MONTH_OCT, MessageKey.MONTH_NOV, MessageKey.MONTH_DEC,
)

K = MessageKey

EN: Dict[MessageKey, str] = {
    K.COMMAND_COMPLETED: "Command completed, exit code: {0}",
    K.EXECUTION_TIME: "Execution time",
    K.STDOUT: "Standard output:",
    K.STDERR: "Error output:",
    K.RESULT_SAVED: "Result saved",
    K.ASSIGNED_SHORT_CODE: "Short code: {0}",
    K.HINT_DIFF_WITH_CODE: "Tip: run again with --diff-code={0} to compare",
    K.DIFF_CODE_NOT_FOUND: "No record found with short code: {0}",
    K.NEED_AT_LEAST_TWO: "Need at least two execution records for comparison",
    K.SELECT_EXECUTIONS: "Found {0} execution records, please select two to compare:",
    K.SELECT_COMMAND: "Select a command to compare (Enter=open, Esc=quit):",
    K.SELECT_CLEAN_COMMAND: "Select a command to clean:",
    K.SELECT_CLEAN_FILE: "Select a file to clean:",
    K.INPUT_NUMBERS: "Input two numbers (space separated, e.g., 1 2), short codes, or a date:",
    K.INPUT_NUMBER: "Input a number:",
    K.INVALID_INPUT: "Invalid input, will use the latest two records",
    K.COUNT_LABEL: "count",
    K.LATEST_LABEL: "latest",
    K.SHORT_CODE_LABEL: "code",
    K.TIME_LABEL: "time",
    K.STATUS_SELECT_FIRST: "Select first record (press Enter to confirm):",
    K.STATUS_SELECT_SECOND: "Select second record (press Enter to confirm):",
    K.STATUS_FILTER: "Filter",
    K.NAVIGATE_HINT: "type to filter, j/k or arrows to move, Enter to select, Delete to clear, Esc to quit",
    K.NO_MATCHES: "No matches found",
    K.SELECTION_COMPLETE: "Selected two records.",
    K.MARK_HINT: "Tab/Space to mark or unmark",
    K.PREVIEW_STDOUT_HEADER: "Preview: stdout",
    K.PREVIEW_STDERR_HEADER: "Preview: stderr",
    K.PREVIEW_TOGGLE_SHORT: "o/←/→ to switch",
    K.PREVIEW_PATH_LABEL: "Path: {0}",
    K.PREVIEW_PATH_MISSING: "Path: unavailable",
    K.PREVIEW_EMPTY: "Output is empty",
    K.PREVIEW_TRUNCATED_HINT: "… truncated",
    K.PREVIEW_NO_SELECTION: "Select a record to preview output",
    K.PREVIEW_SINGLE_COLUMN_NOTICE: "Terminal too narrow, using single-column view",
    K.WARNING_INTERACTIVE_FAILED: "Warning: Cannot enable interactive mode, falling back to simple selection mode",
    K.FEW_RECORDS_FALLBACK: "Less than 2 matched records, using the latest two records",
    K.USING_FILTERED_RECORDS: "Using the two filtered records for comparison:",
    K.MONTH_JAN: "Jan",
    K.MONTH_FEB: "Feb",
    K.MONTH_MAR: "Mar",
    K.MONTH_APR: "Apr",
    K.MONTH_MAY: "May",
    K.MONTH_JUN: "Jun",
    K.MONTH_JUL: "Jul",
    K.MONTH_AUG: "Aug",
    K.MONTH_SEP: "Sep",
    K.MONTH_OCT: "Oct",
    K.MONTH_NOV: "Nov",
    K.MONTH_DEC: "Dec",
    K.DIFF_COMMAND: "Command: {0}",
    K.DIFF_EARLIER_LABEL: "Earlier",
    K.DIFF_LATER_LABEL: "Later",
    K.DIFF_EXIT_CODE: "exit code: {0} -> {1}",
    K.DIFF_EXECUTION_TIME: "execution time: {0}ms -> {1}ms",
    K.STDOUT_DIFF: "stdout diff:",
    K.STDERR_DIFF: "stderr diff:",
    K.OUTPUT_IDENTICAL: "output is identical",
    K.NO_RECORDS: "No records found",
    K.NO_RELATED_FILES: "No related file records found",
    K.CLEAN_RECORD: "Cleaning record: {0} (time: {1})",
    K.CLEANED_RECORDS: "Cleaned {0} records",
    K.CLEANED_ALL: "Clean completed",
    K.CONFIRM_DELETE_PROMPT: "Type YES to confirm (or ALL to confirm all deletions this session): ",
    K.CONFIRM_CLEAN_ALL_TITLE: "Dangerous operation: this will delete ALL history",
    K.CONFIRM_CLEAN_ALL_ABORTED: "Aborted. No records were deleted.",
    K.CLEAN_ALL_SUMMARY: "Summary: {0} different commands, {1} total records",
    K.DELETE_NOTHING: "No records matched; nothing to delete.",
    K.DRY_RUN_TOTAL: "Dry-run total: {0} records",
    K.DELETE_SUMMARY_QUERY: "About to delete {0} records matching: {1}",
    K.DELETE_SUMMARY_FILE: "About to delete {0} records related to file: {1}",
    K.CONFIG_CREATED: "Created: {0}",
    K.CONFIG_EXISTS: "Config already exists: {0} (use --force to overwrite)",
    K.ERROR_CREATE_DT_DIR: "Failed to create .dt directory",
    K.ERROR_CREATE_RECORDS_DIR: "Failed to create records directory",
    K.ERROR_CREATE_RECORD_DIR: "Failed to create record directory",
    K.ERROR_SAVE_METADATA: "Failed to save metadata",
    K.ERROR_SAVE_STDOUT: "Failed to save stdout",
    K.ERROR_SAVE_STDERR: "Failed to save stderr",
    K.ERROR_READ_STDOUT: "Cannot read stdout",
    K.ERROR_READ_STDERR: "Cannot read stderr",
    K.ERROR_READ_BUCKET: "Failed to read record directory {0}",
    K.ERROR_UPDATE_INDEX: "Failed to update index",
    K.ERROR_SAVE_ARCHIVE: "Failed to save {0} year archive",
    K.ERROR_REBUILD_INDEX: "Failed to rebuild index",
    K.ERROR_DELETE_RECORD: "Failed to delete record {0}",
    K.ERROR_EXECUTE_COMMAND: "Failed to execute command",
    K.ERROR_CAPTURE_OUTPUT: "Failed to capture command output",
}

ZH: Dict[MessageKey, str] = {
    K.COMMAND_COMPLETED: "命令执行完成，退出码: {0}",
    K.EXECUTION_TIME: "执行时间",
    K.STDOUT: "标准输出:",
    K.STDERR: "错误输出:",
    K.RESULT_SAVED: "结果已保存",
    K.ASSIGNED_SHORT_CODE: "短码: {0}",
    K.HINT_DIFF_WITH_CODE: "提示: 再次运行时使用 --diff-code={0} 进行比较",
    K.DIFF_CODE_NOT_FOUND: "未找到短码为 {0} 的记录",
    K.NEED_AT_LEAST_TWO: "需要至少两条执行记录才能比较",
    K.SELECT_EXECUTIONS: "找到 {0} 条执行记录，请选择两条进行比较:",
    K.SELECT_COMMAND: "选择要比较的命令 (Enter=打开, Esc=退出):",
    K.SELECT_CLEAN_COMMAND: "选择要清理的命令:",
    K.SELECT_CLEAN_FILE: "选择要清理的文件:",
    K.INPUT_NUMBERS: "输入两个序号 (空格分隔, 例如 1 2)、短码或日期:",
    K.INPUT_NUMBER: "输入一个序号:",
    K.INVALID_INPUT: "输入无效，将使用最近两条记录",
    K.COUNT_LABEL: "次数",
    K.LATEST_LABEL: "最近",
    K.SHORT_CODE_LABEL: "短码",
    K.TIME_LABEL: "时间",
    K.STATUS_SELECT_FIRST: "选择第一条记录 (按 Enter 确认):",
    K.STATUS_SELECT_SECOND: "选择第二条记录 (按 Enter 确认):",
    K.STATUS_FILTER: "过滤",
    K.NAVIGATE_HINT: "输入以过滤, j/k 或方向键移动, Enter 选择, Delete 清空, Esc 退出",
    K.NO_MATCHES: "没有匹配项",
    K.SELECTION_COMPLETE: "已选择两条记录。",
    K.MARK_HINT: "Tab/空格 标记或取消",
    K.PREVIEW_STDOUT_HEADER: "输出预览（stdout）",
    K.PREVIEW_STDERR_HEADER: "输出预览（stderr）",
    K.PREVIEW_TOGGLE_SHORT: "o/←/→ 切换",
    K.PREVIEW_PATH_LABEL: "路径: {0}",
    K.PREVIEW_PATH_MISSING: "路径: 暂不可用",
    K.PREVIEW_EMPTY: "输出为空",
    K.PREVIEW_TRUNCATED_HINT: "… 内容较长，已截断",
    K.PREVIEW_NO_SELECTION: "请选择记录以查看输出预览",
    K.PREVIEW_SINGLE_COLUMN_NOTICE: "终端宽度不足，使用单列视图",
    K.WARNING_INTERACTIVE_FAILED: "警告: 无法启用交互模式，回退到简单选择模式",
    K.FEW_RECORDS_FALLBACK: "匹配记录少于 2 条，使用最近两条记录",
    K.USING_FILTERED_RECORDS: "使用过滤后的两条记录进行比较:",
    K.MONTH_JAN: "一月",
    K.MONTH_FEB: "二月",
    K.MONTH_MAR: "三月",
    K.MONTH_APR: "四月",
    K.MONTH_MAY: "五月",
    K.MONTH_JUN: "六月",
    K.MONTH_JUL: "七月",
    K.MONTH_AUG: "八月",
    K.MONTH_SEP: "九月",
    K.MONTH_OCT: "十月",
    K.MONTH_NOV: "十一月",
    K.MONTH_DEC: "十二月",
    K.DIFF_COMMAND: "命令: {0}",
    K.DIFF_EARLIER_LABEL: "较早",
    K.DIFF_LATER_LABEL: "较晚",
    K.DIFF_EXIT_CODE: "退出码: {0} -> {1}",
    K.DIFF_EXECUTION_TIME: "执行时间: {0}ms -> {1}ms",
    K.STDOUT_DIFF: "标准输出差异:",
    K.STDERR_DIFF: "错误输出差异:",
    K.OUTPUT_IDENTICAL: "输出完全一致",
    K.NO_RECORDS: "没有找到记录",
    K.NO_RELATED_FILES: "没有找到相关文件记录",
    K.CLEAN_RECORD: "清理记录: {0} (时间: {1})",
    K.CLEANED_RECORDS: "已清理 {0} 条记录",
    K.CLEANED_ALL: "清理完成",
    K.CONFIRM_DELETE_PROMPT: "输入 YES 确认 (或输入 ALL 确认本次所有删除): ",
    K.CONFIRM_CLEAN_ALL_TITLE: "危险操作: 将删除全部历史记录",
    K.CONFIRM_CLEAN_ALL_ABORTED: "已取消，没有删除任何记录。",
    K.CLEAN_ALL_SUMMARY: "汇总: {0} 个不同命令, 共 {1} 条记录",
    K.DELETE_NOTHING: "没有匹配的记录，无需删除。",
    K.DRY_RUN_TOTAL: "预演合计: {0} 条记录",
    K.DELETE_SUMMARY_QUERY: "即将删除 {0} 条匹配 {1} 的记录",
    K.DELETE_SUMMARY_FILE: "即将删除 {0} 条与文件 {1} 相关的记录",
    K.CONFIG_CREATED: "已创建: {0}",
    K.CONFIG_EXISTS: "配置已存在: {0} (使用 --force 覆盖)",
    K.ERROR_CREATE_DT_DIR: "创建 .dt 目录失败",
    K.ERROR_CREATE_RECORDS_DIR: "创建记录目录失败",
    K.ERROR_CREATE_RECORD_DIR: "创建记录子目录失败",
    K.ERROR_SAVE_METADATA: "保存元数据失败",
    K.ERROR_SAVE_STDOUT: "保存标准输出失败",
    K.ERROR_SAVE_STDERR: "保存错误输出失败",
    K.ERROR_READ_STDOUT: "无法读取标准输出",
    K.ERROR_READ_STDERR: "无法读取错误输出",
    K.ERROR_READ_BUCKET: "读取记录目录 {0} 失败",
    K.ERROR_UPDATE_INDEX: "更新索引失败",
    K.ERROR_SAVE_ARCHIVE: "保存 {0} 年归档失败",
    K.ERROR_REBUILD_INDEX: "重建索引失败",
    K.ERROR_DELETE_RECORD: "删除记录 {0} 失败",
    K.ERROR_EXECUTE_COMMAND: "执行命令失败",
    K.ERROR_CAPTURE_OUTPUT: "捕获命令输出失败",
}

TRANSLATIONS: Dict[str, Dict[MessageKey, str]] = {
    "en": EN,
    "zh": ZH,
}

DEFAULT_LANGUAGE = "en"


def resolve_language(language: Optional[str]) -> str:
    """
    Map a configured language (``auto``, ``zh_CN``, ``en-US`` ...) to a table name.

    ``auto`` reads ``LANG`` from the environment.
    """
    lang = (language or "auto").strip()
    if lang.lower() == "auto":
        lang = os.getenv("LANG", "en_US").split(".")[0]
    prefix = lang.replace("-", "_").split("_")[0].lower()
    return prefix if prefix in TRANSLATIONS else DEFAULT_LANGUAGE


class I18n:
    """
    Message lookup for one language.

    Usage:
        i18n = I18n("zh")
        i18n.t(MessageKey.CLEANED_RECORDS, 3)
    """

    def __init__(self, language: str = DEFAULT_LANGUAGE):
        self.language = resolve_language(language)
        self._table = TRANSLATIONS[self.language]

    def t(self, key: MessageKey, *args) -> str:
        """Look up ``key`` and substitute ``{0}``, ``{1}`` ... with ``args``."""
        template = self._table[key]
        if not args:
            return template
        return template.format(*(str(a) for a in args))

    def month_names(self):
        """Localized month names, January first."""
        return [self._table[k] for k in MONTH_KEYS]


def missing_keys(language: str):
    """Keys without a message in ``language``."""
    table = TRANSLATIONS[language]
    return [key for key in MessageKey if key not in table]
