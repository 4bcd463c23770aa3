#!/usr/bin/env python3
"""
单元测试运行脚本
按模块选择测试集
"""

import subprocess
import sys
import argparse

# 选项 -> 测试文件
SUITES = {
    "orchestrator": [
        "tests/test_checkout_orchestrator.py",
        "tests/test_payment_watcher.py",
        "tests/test_checkout_registry.py",
    ],
    "coupon": ["tests/test_coupon_service.py", "tests/test_coupon_router.py"],
    "rails": ["tests/test_payment_rails.py"],
    "router": ["tests/test_checkout_router.py", "tests/test_coupon_router.py"],
    "models": ["tests/test_models.py", "tests/test_order_store.py", "tests/test_idempotency_service.py"],
    "pure": ["tests/test_pricing.py", "tests/test_checkout_validator.py", "tests/test_shipping_quotes.py"],
    "deps": ["tests/test_dependencies.py"],
    "tasks": ["tests/test_celery_tasks.py", "tests/test_notification_service.py"],
}


def run_tests(targets=None, verbose=False, coverage=False):
    """运行单元测试

    Args:
        targets: 测试文件列表或 pytest 节点，为空时运行 tests/ 全部
        verbose: 是否显示详细输出
        coverage: 是否生成覆盖率报告
    """
    cmd = [sys.executable, "-m", "pytest"]
    cmd.extend(targets or ["tests/"])
    cmd.extend([
        "-v" if verbose else "-q",
        "--tb=short",  # 简洁的 traceback
    ])

    # 覆盖率选项
    if coverage:
        cmd.extend([
            "--cov=app",
            "--cov=tasks",
            "--cov-report=term-missing"
        ])

    print(f"🚀 运行命令: {' '.join(cmd)}")
    print("=" * 50)

    result = subprocess.run(cmd)
    if result.returncode == 0:
        print("\n✅ 测试运行完成")
    else:
        print(f"\n❌ 测试失败，退出码: {result.returncode}")
    return result.returncode


def main():
    parser = argparse.ArgumentParser(description="结算微服务单元测试运行器")
    for name in SUITES:
        parser.add_argument(
            f"--{name}",
            action="store_true",
            help=f"只运行 {name} 相关测试"
        )
    parser.add_argument(
        "--coverage",
        action="store_true",
        help="生成覆盖率报告（需要 pytest-cov）"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="详细输出模式"
    )
    parser.add_argument(
        "-k",
        dest="keyword",
        help="按测试名过滤 (如 test_card_approved)"
    )

    args = parser.parse_args()

    targets = []
    for name, files in SUITES.items():
        if getattr(args, name):
            targets.extend(f for f in files if f not in targets)
    if args.keyword:
        targets.extend(["-k", args.keyword])

    return run_tests(targets, args.verbose, args.coverage)


if __name__ == "__main__":
    sys.exit(main())
