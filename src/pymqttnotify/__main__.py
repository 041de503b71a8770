import sys

from pymqttnotify.cli import main

sys.exit(main())
