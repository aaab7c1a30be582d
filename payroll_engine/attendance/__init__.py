# payroll_engine/attendance/__init__.py
