from script2voiceover.cli import main

main()
