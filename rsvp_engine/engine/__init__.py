"""Pacing engines: step scheduler, continuous animator, rate controller.

WHY: Forward progress through the text happens over time, under several
interacting modes. Each engine owns one disjoint piece of derived state
(the step index or the scroll offset) and reads the shared ConditionSpec
live, so no locking is needed on the single thread of control.

HOW: timers.py provides cancellable timer/frame back-ends, events.py the
bounded event log. step_scheduler.py, animator.py and rate_control.py are
the engines proper.

RULES:
- The step scheduler and animator are mutually exclusive per spec
- Engines never construct a ConditionSpec from untrusted input
"""
