import sys

import rpk8s.cli

if __name__ == "__main__":  # codecov-skip
    try:
        sys.exit(rpk8s.cli.main())
    except KeyboardInterrupt:
        print("User abort")
        sys.exit(1)
