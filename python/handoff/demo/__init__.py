"""
Example server restarting without downtime.

    python -m handoff.demo --listen 127.0.0.1:48879
    kill -USR2 <pid>    # restart
    kill -HUP <pid>     # reload the configuration file
    kill -TERM <pid>    # stop
"""
