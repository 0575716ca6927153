"""Run the freight-watch command line tool."""

from freight_watch.tool.freight_watch import main

if __name__ == "__main__":
    main()
