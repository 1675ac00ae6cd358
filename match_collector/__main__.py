from match_collector.main import main

if __name__ == "__main__":
    main()
