"""
Prefect flows for the lock engine.

Flows handle:
- Scheduling (served every 15 minutes by run_lock_scheduler)
- Bounded retries and timeouts
- Run logging and Slack notifications

Structure:
- auto_lock.py: AutoLockScheduler and auto_lock_teams_flow
- race_completion.py: RaceCompletionProcessor and process_race_completion_flow
"""
