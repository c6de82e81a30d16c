"""
Elastic Beanstalk Entry Point
"""
import sys
import os

# Add the current directory to Python path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from backend.app import app as application, start_background_simulation

# One simulator per server process
start_background_simulation()

# For local testing
if __name__ == "__main__":
    application.run(debug=True, use_reloader=False)
