"""Pure building blocks: configuration value, tokenizer, windower, normalizer.

WHY: Tokenization, windowing and configuration import have total, defined
results for every input. Keeping them free of clocks and state makes them
trivially testable and safe to call from any engine.

HOW: spec.py defines the frozen ConditionSpec tree, tokenizer.py and
windower.py turn text into display strings, normalizer.py guards the
import boundary.

RULES:
- Nothing in this package schedules work or holds mutable state
- Only normalizer.normalize / parse_config may raise (MalformedConfig)
"""
