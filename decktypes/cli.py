"""
命令行界面

提供规则树检查、查看、分类与监听等命令
"""

import json
import click
import yaml
import logging
from typing import Optional

from .core.config import Config
from .classifiers.classifier import DeckClassifier
from .rules.context import AttributeRecord
from .rules.errors import CompileError, RuleTreeError
from .utils.file_utils import load_record


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> None:
    """设置日志"""
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def _resolve_rules(ctx, rules_file: Optional[str]) -> str:
    """确定规则文件路径，找不到时退出"""
    config = ctx.obj["config"]
    path = config.resolve_rules_file(rules_file)
    if path is None:
        click.echo(f"❌ 找不到规则文件: {rules_file or config.rules.rules_file}", err=True)
        ctx.exit(1)
    return path


def _echo_rule_error(error: RuleTreeError) -> None:
    click.echo(f"❌ 规则树加载失败: {error.__class__.__name__}", err=True)
    if isinstance(error, CompileError):
        for issue in error.issues:
            click.echo(f"   {issue}", err=True)
    else:
        click.echo(f"   {error}", err=True)


def _load_classifier(ctx, rules_file: Optional[str]) -> DeckClassifier:
    """创建分类器并加载规则树，失败时退出"""
    config = ctx.obj["config"]
    path = _resolve_rules(ctx, rules_file)
    classifier = DeckClassifier(config.get_config_dict())
    try:
        classifier.initialize_from_file(path)
    except RuleTreeError as e:
        _echo_rule_error(e)
        ctx.exit(1)
    return classifier


def _read_record(ctx, record_file: str) -> AttributeRecord:
    """读取记录文件，格式无效时退出"""
    try:
        return load_record(record_file)
    except (ValueError, yaml.YAMLError) as e:
        click.echo(f"❌ {e}", err=True)
        ctx.exit(1)


@click.group()
@click.option("--config", "-c", help="配置文件路径")
@click.option("--verbose", "-v", is_flag=True, help="详细输出")
@click.pass_context
def main(ctx, config: Optional[str], verbose: bool):
    """基于规则树的卡组类型分类器"""

    ctx.ensure_object(dict)
    ctx.obj["config"] = Config(config)

    # 设置日志
    system = ctx.obj["config"].system
    log_level = "DEBUG" if verbose else system.log_level
    setup_logging(log_level, system.log_file)

    if verbose:
        click.echo(f"配置文件: {ctx.obj['config'].config_path}")


@main.command()
@click.pass_context
def init(ctx):
    """创建默认配置文件"""
    config = ctx.obj["config"]

    config.create_default_config()
    click.echo(f"配置文件已保存: {config.config_path}")


@main.command()
@click.pass_context
def info(ctx):
    """显示配置信息"""
    config = ctx.obj["config"]

    click.echo("=== 系统配置信息 ===")
    click.echo(f"配置文件: {config.config_path}")
    click.echo(f"规则文件: {config.rules.rules_file}")
    click.echo(f"备选路径: {', '.join(config.rules.search_paths)}")
    click.echo(f"层级标记: {config.rules.depth_marker}  分隔符: {config.rules.separator}")
    click.echo(f"结构节点前缀: {config.rules.structural_marker}")
    click.echo(f"根节点: {config.rules.root_name}")

    if not config.validate():
        click.echo("⚠️ 配置存在问题，详见日志", err=True)
        ctx.exit(1)


@main.command()
@click.argument("rules_file", type=click.Path(), required=False)
@click.pass_context
def check(ctx, rules_file: Optional[str]):
    """检查规则文件能否解析和编译"""
    classifier = _load_classifier(ctx, rules_file)

    structural = sum(1 for node in classifier.iter_nodes() if node.is_structural)
    click.echo(f"✅ 规则树有效: {classifier.node_count - 1} 条规则（{structural} 个结构节点）")


@main.command()
@click.argument("rules_file", type=click.Path(), required=False)
@click.option("--expressions", "-e", is_flag=True, help="同时显示条件表达式")
@click.pass_context
def tree(ctx, rules_file: Optional[str], expressions: bool):
    """以缩进形式显示规则树"""
    classifier = _load_classifier(ctx, rules_file)

    for node in classifier.iter_nodes():
        marker = " (结构)" if node.is_structural else ""
        click.echo(f"{'  ' * node.level}{node.name}{marker}")
        if expressions:
            click.echo(f"{'  ' * node.level}  {node.expression}")


@main.command()
@click.argument("record_file", type=click.Path(exists=True), required=False)
@click.option("--rules", "rules_file", type=click.Path(), help="规则文件路径")
@click.option("--category", help="类别标签")
@click.option("--color", "colors", multiple=True, help="颜色（可多次指定）")
@click.option("--card", "cards", multiple=True, help="卡牌（可多次指定）")
@click.option("--word", "words", multiple=True, help="关键词（可多次指定）")
@click.option("--json", "as_json", is_flag=True, help="以JSON格式输出")
@click.option("--explain", is_flag=True, help="显示每一层的匹配节点")
@click.pass_context
def classify(
    ctx,
    record_file: Optional[str],
    rules_file: Optional[str],
    category: Optional[str],
    colors: tuple,
    cards: tuple,
    words: tuple,
    as_json: bool,
    explain: bool,
):
    """对一条记录进行分类"""
    classifier = _load_classifier(ctx, rules_file)

    if record_file:
        record = _read_record(ctx, record_file)
    else:
        record = AttributeRecord.from_dict(
            {"category": category, "colors": colors, "cards": cards, "words": words}
        )

    result = classifier.classify(record)

    if as_json:
        payload = {"result": result.to_dict() if result else None}
        if explain:
            payload["matches"] = {
                str(level): [node.name for node in nodes]
                for level, nodes in sorted(classifier.explain(record).items())
            }
        click.echo(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    if explain:
        click.echo("=== 各层匹配 ===")
        for level, nodes in sorted(classifier.explain(record).items()):
            flag = "✓" if len(nodes) == 1 else "✗"
            click.echo(f"  [{level}] {flag} {', '.join(node.name for node in nodes)}")

    if result is None:
        click.echo("未找到唯一的分类")
    else:
        click.echo(f"分类结果: {result.name}")
        click.echo(f"路径: {' > '.join(result.path)}")


@main.command()
@click.argument("rules_file", type=click.Path(exists=True), required=False)
@click.option("--record", "record_file", type=click.Path(exists=True), help="每次重新加载后分类的记录文件")
@click.option("--interval", "-i", type=float, help="主循环检查间隔（秒）")
@click.pass_context
def watch(ctx, rules_file: Optional[str], record_file: Optional[str], interval: Optional[float]):
    """监听规则文件，变化时重新编译规则树"""
    import signal
    import time
    from .core.watcher import RuleFileReloader

    config = ctx.obj["config"]
    path = _resolve_rules(ctx, rules_file)
    classifier = DeckClassifier(config.get_config_dict())
    record = _read_record(ctx, record_file) if record_file else None

    def on_reload(error: Optional[RuleTreeError]) -> None:
        if error is not None:
            _echo_rule_error(error)
            click.echo("⚠️ 保留之前的规则树")
            return
        click.echo(f"🔄 规则树已加载: {classifier.node_count - 1} 条规则")
        if record is not None:
            result = classifier.classify(record)
            click.echo(f"   分类结果: {result.name if result else '无'}")

    reloader = RuleFileReloader(classifier, path, on_reload=on_reload)

    shutdown_requested = False

    def signal_handler(signum, frame):
        nonlocal shutdown_requested
        click.echo("\n🛑 收到关闭信号，正在停止监听...")
        shutdown_requested = True

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        reloader.start()
        click.echo(f"✅ 正在监听规则文件: {path}")
        click.echo("💡 按 Ctrl+C 停止监听")
        while not shutdown_requested:
            time.sleep(interval or config.watch.interval)
    finally:
        reloader.stop()
        click.echo("监听已停止")


if __name__ == "__main__":
    main()
